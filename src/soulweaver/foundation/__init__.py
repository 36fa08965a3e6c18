"""Foundation utilities: logging setup."""
