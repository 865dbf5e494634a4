"""Classification stage: classify stored text with Gemini and file the Drive document."""
