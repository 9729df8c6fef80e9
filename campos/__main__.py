"""Run the API and Socket.IO server: ``python -m campos``."""

from __future__ import annotations

import uvicorn

from campos.settings import settings


def main() -> None:
	uvicorn.run(
		"campos.main:socket_app",
		host=settings.api_host,
		port=settings.api_port,
		log_config=None,
		reload=settings.is_dev(),
	)


if __name__ == "__main__":
	main()
