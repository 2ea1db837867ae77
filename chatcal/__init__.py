"""Natural-language Google Calendar assistant backend."""
