"""Bank statement ingestion: parsers and the upload resolver."""
