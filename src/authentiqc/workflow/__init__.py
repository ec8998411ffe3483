"""LangGraph pipelines for multi-step background flows."""
