# api_server.py
# uvicorn api_server:app --port 3000
from cm360.config import load_settings
from cm360.logging_setup import setup_logging
from cm360.rest_api import create_app

settings = load_settings()
setup_logging(settings.log_level, settings.log_file)

app = create_app(settings=settings)
