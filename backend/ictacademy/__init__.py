"""ICT Academy backend - phone OTP, credential resolution and session roles"""

__version__ = "1.0.0"
