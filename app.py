from flask import Flask, jsonify
import sys

from icyproxy.config import DEBUG, HOST, PORT, log_debug, read_stream_url
from icyproxy.errors import ServiceError
from icyproxy.service import MetadataService


def create_app(service=None):
    """Build the Flask app around one MetadataService (and so one cache)."""
    app = Flask(__name__)
    app.extensions['metadata_service'] = service if service is not None else MetadataService()

    @app.route('/config')
    def config():
        try:
            stream_url = read_stream_url()
        except OSError as e:
            print(f"Error reading stream URL: {e}", file=sys.stderr)
            return jsonify({"error": "Failed to read configuration"}), 500
        return jsonify({"streamUrl": stream_url})

    @app.route('/metadata')
    def metadata():
        metadata_service = app.extensions['metadata_service']
        try:
            data = metadata_service.get_metadata()
        except ServiceError as e:
            # Only the public message goes to the client
            print(f"Metadata error ({type(e).__name__}): {e}", file=sys.stderr)
            return jsonify({"error": e.message}), e.status

        log_debug(f"Serving metadata: {data}")
        return jsonify(data.to_dict())

    return app


app = create_app()

if __name__ == '__main__':
    print(f"Radio metadata proxy running at http://{HOST}:{PORT}")
    app.run(host=HOST, port=PORT, debug=DEBUG, threaded=True)
