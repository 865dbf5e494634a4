"""Discovery stage: scan a Drive folder and queue its documents."""
