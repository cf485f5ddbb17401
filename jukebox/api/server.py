import argparse
import logging
import os


def main():
    parser = argparse.ArgumentParser(description='Jukebox API Server')
    parser.add_argument('--host', default='127.0.0.1', help='Host to bind to')
    parser.add_argument('--port', type=int, default=int(os.environ.get('PORT', '4000')), help='Port to bind to')
    parser.add_argument('--reload', action='store_true', help='Enable auto-reload')
    parser.add_argument('--log-level', default='info', help='Uvicorn log level')
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    import uvicorn

    uvicorn.run(
        "jukebox.api.app:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        reload=args.reload,
    )

if __name__ == "__main__":
    main()
