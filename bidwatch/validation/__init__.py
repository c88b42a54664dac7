"""JSON Schema validation of API payloads."""
