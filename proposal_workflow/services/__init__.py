"""Services - template rendering, validation, wizard and proposal lifecycle."""
