"""Captcha relay: submit an image, poll for the inference result."""

__version__ = "0.1.0"
