"""Persistence stage: store extracted text in Firestore."""
