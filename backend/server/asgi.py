"""
ASGI entry point for uvicorn (see server.main).

Configuration is read from the environment, with a .env file loaded first.
A malformed value raises ConfigurationError at import, before serving.
"""

from dotenv import load_dotenv

load_dotenv()

# pylint: disable=wrong-import-position
from config import AppConfig
from server.app import create_app

app = create_app(config=AppConfig.load_from_env())
