"""
Routes and views for the flask application.
"""
import io
from datetime import datetime

from flask import Response, render_template, request
from www import app

import stackanalyzer.aggregate
import stackanalyzer.analyzer_config
import stackanalyzer.bucketinfo
import stackanalyzer.dump_parser
import stackanalyzer.hash_combiner

TEXT_FORM_ID = "text"
FILE_FORM_ID = "file"
SIMILARITY_FORM_ID = "similarity"


class MissingContentError(ValueError):
    pass


def get_stack_text():
    """Returns the dump from the text field, falling back to the file upload"""
    v = request.form.get(TEXT_FORM_ID, "")
    if v:
        return v

    upload = request.files.get(FILE_FORM_ID)
    if upload is None:
        raise MissingContentError("missing stack text")
    v = upload.read().decode("utf-8", "replace")
    if not v:
        raise MissingContentError("missing stack text")
    return v


def get_similarity():
    name = request.form.get(SIMILARITY_FORM_ID) or stackanalyzer.analyzer_config.similarity()
    return stackanalyzer.aggregate.Similarity.from_name(name)


def bad_request(message):
    return Response(message + "\n", status=400, mimetype="text/plain")


def parse_request():
    """
    Parses the uploaded dump.

    Returns (buckets, junk, error message).
    """
    text = get_stack_text()
    similarity = get_similarity()

    junk = io.StringIO()
    context, err = stackanalyzer.dump_parser.parse_dump(io.StringIO(text), junk)
    if err is not None:
        return None, junk.getvalue(), str(err)

    goroutines = context.goroutines if context is not None else []
    buckets = stackanalyzer.aggregate.aggregate(goroutines, similarity)
    return buckets, junk.getvalue(), None


@app.route('/')
@app.route('/home')
def home():
    """Renders the home page."""
    app.logger.info("home %s %s", request.method, request.url)
    return render_template(
        'index.html',
        title='Combine Go Stacks',
        year=datetime.now().year,
        similarities=[s.value for s in stackanalyzer.aggregate.Similarity],
        default_similarity=stackanalyzer.analyzer_config.similarity())


@app.route('/panicparse', methods=['POST'])
def panicparse():
    """Renders the buckets found in the uploaded dump."""
    app.logger.info("panicparse %s %s", request.method, request.url)
    try:
        buckets, junk, message = parse_request()
    except MissingContentError:
        return bad_request("must provide content")
    except ValueError as err:
        return bad_request(str(err))

    if message is not None:
        return bad_request(message)

    return render_template(
        'buckets.html',
        title='Combined Stacks',
        year=datetime.now().year,
        buckets=buckets,
        total=sum(len(b) for b in buckets),
        junk=junk)


@app.route('/upload', methods=['POST'])
def upload():
    """Combines the uploaded dump with the hash combiner, as plain text."""
    app.logger.info("upload %s %s", request.method, request.url)
    try:
        text = get_stack_text()
        routines = stackanalyzer.hash_combiner.parse(text.splitlines())
    except MissingContentError:
        return bad_request("must provide content")
    except ValueError as err:
        return bad_request(str(err))

    out = io.StringIO()
    stackanalyzer.hash_combiner.write_aggregated(out, routines)
    return Response(out.getvalue(), mimetype="text/plain")


@app.route('/api/buckets', methods=['POST'])
def api_buckets():
    """Returns the buckets found in the uploaded dump as JSON."""
    app.logger.info("api_buckets %s %s", request.method, request.url)
    try:
        buckets, _, message = parse_request()
    except MissingContentError:
        return bad_request("must provide content")
    except ValueError as err:
        return bad_request(str(err))

    if message is not None:
        return bad_request(message)

    return Response(stackanalyzer.bucketinfo.to_json(buckets), mimetype="application/json")
