from __future__ import annotations
import subprocess

from flask import Flask, jsonify, request

from ..config import CFG
from ..errors import InvalidFilter, RowParseError, StreamError
from ..filters import Filter
from ..state import SocketState
from ..top import get as top_get
from ..top.stream import StreamState


def create_app(cfg: CFG, state: SocketState) -> Flask:
    app = Flask(__name__)

    @app.errorhandler(InvalidFilter)
    def bad_filter(err):
        return jsonify({"error": str(err)}), 400

    @app.errorhandler(StreamError)
    def stream_failed(err):
        app.logger.warning("process sampler: %s", err)
        return jsonify({"error": str(err)}), 503

    @app.get("/api/sockets")
    def api_sockets():
        flt = Filter.from_mapping(request.args)
        with state.lock:
            sockets = list(state.sockets)
            updated_at = state.updated_at
            last_error = state.last_error
        return jsonify({
            "updated_at": updated_at,
            "error": last_error,
            "sockets": [s.to_dict() for s in flt.apply(sockets)],
        })

    @app.get("/api/processes")
    def api_processes():
        flt = Filter.from_mapping(request.args)
        stream = state.stream
        failure = state.poll_stream()
        if failure is not None:
            raise StreamError(failure)
        if stream is not None and stream.state is StreamState.RUNNING:
            rows = sorted(stream.latest().values(), key=lambda r: r.pid)
        else:
            try:
                rows = top_get(cfg.top_exec, pid=flt.pid)
            except (subprocess.SubprocessError, OSError, RowParseError) as err:
                raise StreamError(f"{cfg.top_exec!r} failed: {err}") from err
        return jsonify({"processes": [r.to_dict() for r in flt.apply(rows)]})

    @app.get("/api/status")
    def api_status():
        stream = state.stream
        failure = state.poll_stream()
        with state.lock:
            body = {
                "updated_at": state.updated_at,
                "sockets": len(state.sockets),
                "error": state.last_error,
            }
        body["stream"] = stream.state.value if stream is not None else None
        body["stream_error"] = failure
        return jsonify(body)

    return app
