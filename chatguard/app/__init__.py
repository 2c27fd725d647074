"""chatguard application package."""
