"""Services for Scribeflow: event publishing, processing pipeline and the recording controller."""
