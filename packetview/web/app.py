from __future__ import annotations
from datetime import datetime, timezone

import orjson
from flask import Flask, Response, jsonify, request

from ..capture.interfaces import list_interfaces
from ..capture.supervisor import CaptureConflictError, CaptureLaunchError
from ..engine import Engine
from ..models import InterfaceListMessage


def dumps(obj) -> str:
    return orjson.dumps(obj).decode()


def _json(obj, status: int = 200) -> Response:
    return Response(dumps(obj), status=status, mimetype="application/json")


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _targets(body: dict) -> list[str]:
    names = body.get("interfaces")
    if isinstance(names, str):
        names = [names]
    if not names and body.get("interface"):
        names = [body["interface"]]
    return [n for n in (names or []) if isinstance(n, str) and n]


def create_app(engine: Engine) -> Flask:
    app = Flask(__name__)
    cfg = engine.cfg
    sup = engine.supervisor

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "port": cfg.port,
                        "timestamp": datetime.now(timezone.utc).isoformat()})

    @app.get("/api/interfaces")
    def api_interfaces():
        return _json(InterfaceListMessage(list_interfaces()))

    @app.post("/api/capture/start")
    def api_capture_start():
        body = _body()
        targets = _targets(body)
        app.logger.info("capture start: interfaces=%s filter=%s", targets, body.get("filter"))
        if not targets:
            return jsonify({"error": "At least one interface must be specified"}), 400
        if not cfg.packet_capture:
            return jsonify({"error": "Packet capture is disabled"}), 503
        try:
            started = sup.start_interfaces(targets, body.get("filter") or None)
        except CaptureConflictError as e:
            return jsonify({"error": str(e), "interfaces": e.interfaces}), 409
        except CaptureLaunchError as e:
            return jsonify({"error": str(e), "interface": e.interface}), 500
        return jsonify({"success": True, "interfaces": started,
                        "message": f"Capture started on {len(started)} interface(s)"})

    @app.post("/api/capture/stop")
    def api_capture_stop():
        iface = _body().get("interface")
        if iface:
            sup.stop_interface(iface)
            return jsonify({"success": True, "message": f"Capture stopped on {iface}"})
        sup.stop_all()
        return jsonify({"success": True, "message": "All captures stopped"})

    @app.get("/api/capture/status")
    def api_capture_status():
        return jsonify(sup.status())

    @app.get("/api/capture/interfaces")
    def api_capture_interfaces():
        return jsonify({"interfaces": sup.active_interfaces()})

    @app.post("/api/capture/interfaces")
    def api_capture_reselect():
        body = _body()
        targets = _targets(body)
        if not targets:
            return jsonify({"error": "At least one interface must be specified"}), 400
        if not cfg.packet_capture:
            return jsonify({"error": "Packet capture is disabled"}), 503
        sup.stop_all()
        try:
            started = sup.start_interfaces(targets, body.get("filter") or None)
        except CaptureConflictError as e:
            return jsonify({"error": str(e), "interfaces": e.interfaces}), 409
        except CaptureLaunchError as e:
            return jsonify({"error": str(e), "interface": e.interface}), 500
        return jsonify({"success": True, "interfaces": started})

    @app.get("/api/graph")
    def api_graph():
        with engine.store.lock:
            return _json(engine.network_state())

    @app.get("/api/events")
    def api_events():
        since = request.args.get("since", default=0, type=int)
        last, msgs = engine.events_since(since)
        return _json({"last": last, "messages": msgs})

    @app.post("/api/state/clear")
    def api_state_clear():
        engine.store.clear()
        return jsonify({"success": True})

    return app
