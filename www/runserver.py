"""
This script runs the www application using a development server.
"""

import os
import sys

if __name__ == "__main__" and __package__ is None:
    sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(os.path.realpath(__file__)))))

from www import app

import stackanalyzer.analyzer_config


def serve(host=None, port=None):
    if host is None:
        host = stackanalyzer.analyzer_config.server_host()
    if port is None:
        port = stackanalyzer.analyzer_config.server_port()

    app.config["TEMPLATES_AUTO_RELOAD"] = True

    print("listening on http://%s:%d ..." % (host, port))
    app.run(host, port, debug=False)


if __name__ == '__main__':
    serve()
