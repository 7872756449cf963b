from .input_sanitizer import InputSanitizer, sanitize_context, sanitize_input

__all__ = [
    "InputSanitizer",
    "sanitize_context",
    "sanitize_input",
]
