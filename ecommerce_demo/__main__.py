import argparse

import uvicorn

from .app import build_app
from .config import Settings


def main() -> int:
    ap = argparse.ArgumentParser(description="Run the demo ecommerce service")
    ap.add_argument("--host", default=None, help="Bind address. Default is $HOST or 0.0.0.0")
    ap.add_argument("--port", type=int, default=None, help="Listen port. Default is $PORT or 3000")
    args = ap.parse_args()

    overrides = {k: v for k, v in (("host", args.host), ("port", args.port)) if v is not None}
    settings = Settings(**overrides)

    app = build_app(settings)
    # logging is already configured by build_app; keep uvicorn from replacing it
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None, access_log=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
