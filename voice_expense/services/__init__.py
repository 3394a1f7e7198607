"""External collaborators: storage, speech-to-text, extraction, auth."""
