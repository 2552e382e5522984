"""Run the urlcrypt demo service: python -m urlcrypt"""

import uvicorn

from urlcrypt.config import load_config

config = load_config()
uvicorn.run("urlcrypt.app:create_app", host=config.host, port=config.port, factory=True)
