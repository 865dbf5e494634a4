"""Extraction stage: OCR stored documents with the Vision API."""
