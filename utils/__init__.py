# Utils package: logging, configuration validation, sanitization and email formatting helpers
