"""depdoctor - structural health reports for installed npm package trees."""

# Load .env so DEPDOCTOR_REGISTRY_URL, DEPDOCTOR_REGISTRY_TIMEOUT, etc. are set
# for any entry point (CLI, pytest, scripts) that imports depdoctor.
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

# Keep in sync with pyproject.toml [project] version.
__version__ = "0.1.0"
