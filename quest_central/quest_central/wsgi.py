"""WSGI config for quest_central project."""
from __future__ import annotations

import os
from pathlib import Path

from django.core.wsgi import get_wsgi_application
from dotenv import load_dotenv

_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'quest_central.settings')

application = get_wsgi_application()
