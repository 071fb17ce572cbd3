"""Core capture and restore engine for FlowState."""
