"""
The flask application package.
"""
import os
import sys

from flask import Flask

sys.path.append(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(os.path.realpath(__file__))))))

import stackanalyzer.analyzer_config

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = stackanalyzer.analyzer_config.max_upload_bytes()

import www.views  # noqa: E402,F401
