"""Background task orchestration for AI-assisted product quality control."""
