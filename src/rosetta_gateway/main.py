import argparse

import uvicorn

from rosetta_gateway.app import create_app
from rosetta_gateway.log import configure_logging
from rosetta_gateway.settings import settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Rosetta gateway normalization service")
    parser.add_argument("--host", default=settings.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to bind to")
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level")
    parser.add_argument("--patterns-file", default=settings.patterns_file, help="JSON file with pattern tables")
    parser.add_argument(
        "--target-dialect",
        default=settings.target_dialect,
        choices=["anthropic", "openai", "gemini"],
        help="Vocabulary for terminal reasons",
    )
    args = parser.parse_args()

    configure_logging(args.log_level, settings.log_format)
    app_settings = settings.model_copy(
        update={"patterns_file": args.patterns_file, "target_dialect": args.target_dialect}
    )
    uvicorn.run(
        create_app(app_settings),
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        timeout_keep_alive=30,
    )


if __name__ == "__main__":
    main()
