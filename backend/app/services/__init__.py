"""Services package: the learning progress engine lives in app.services.progress."""
