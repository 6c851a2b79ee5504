"""Run the gateway with uvicorn: ``python -m chatrelay``."""

import uvicorn

from .main import create_app


def main() -> None:
    app = create_app()
    uvicorn.run(app, host=app.state.host, port=app.state.port)


if __name__ == "__main__":
    main()
