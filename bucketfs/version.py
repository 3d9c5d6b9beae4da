__version__ = "0.1.0"
USER_AGENT = f"bucketfs/{__version__}"
