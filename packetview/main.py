from __future__ import annotations
import argparse, logging
from .config import init_cfg_from_args
from .engine import Engine
from .web import create_app

def parse_args(argv=None):
    ap = argparse.ArgumentParser(description='Live tcpdump-fed device/connection map')
    ap.add_argument('--host', type=str, default=None)
    ap.add_argument('--port', type=int, default=None, help='HTTP port (default 3001 or $PORT)')
    ap.add_argument('--config', type=str, default=None, help='YAML or JSON file with settings overrides')
    ap.add_argument('--interfaces', type=str, default='', help='comma-separated interfaces to capture on start (default: all up)')
    ap.add_argument('--filter', type=str, default=None, help='BPF filter applied to every auto-started interface')
    ap.add_argument('--tcpdump', type=str, default=None, help='path to the tcpdump binary')
    ap.add_argument('--ttl', type=float, default=None, help='seconds a device/connection stays visible after its last packet')
    ap.add_argument('--layout-every', type=int, default=None, help='relax the layout every N graph reads')
    ap.add_argument('--no-auto-capture', action='store_true')
    ap.add_argument('--debug', action='store_true', help='per-packet debug logging')
    return ap.parse_args(argv)

def main(argv=None):
    args = parse_args(argv)
    cfg = init_cfg_from_args(args)
    logging.basicConfig(level=logging.DEBUG if cfg.debug else logging.INFO,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    engine = Engine(cfg)
    started = engine.auto_start()
    if started:
        print(f"[*] capturing on {', '.join(started)}")

    app = create_app(engine)
    print(f"[*] Serving on http://localhost:{cfg.port}")
    try:
        app.run(host=cfg.host, port=cfg.port, debug=False, use_reloader=False, threaded=True)
    finally:
        engine.shutdown()

if __name__ == '__main__':
    main()
