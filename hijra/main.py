import argparse
import json
import logging
import sys
from datetime import date
from typing import List, Optional

from hijra.core.app import HijraApp
from hijra.prayer.status import parse_date_str


def setup_basic_logging():
    """Setup basic stdout logging before config is loaded"""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        ))
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.DEBUG)
        logging.debug("Basic logging initialized")


def _date_arg(value: str) -> str:
    try:
        parse_date_str(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYY-MM-DD")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Offline-first prayer tracker')
    parser.add_argument('--config', help='Path to config file (default: ~/.hijra/config.yaml)')
    parser.add_argument('--user', help='User id (default: user_id from config)')
    parser.add_argument('--offline', action='store_true', help='Do not contact the remote store')

    sub = parser.add_subparsers(dest='command', required=True)

    show = sub.add_parser('show', help='Show the prayers for a date')
    show.add_argument('date', nargs='?', type=_date_arg, default=None)

    adv = sub.add_parser('advance', help='Advance one prayer to its next status')
    adv.add_argument('slot', type=int, choices=range(5), help='0=Fajr .. 4=Isha')
    adv.add_argument('date', nargs='?', type=_date_arg, default=None)

    sub.add_parser('sync', help='Push all unsynced days now')

    st = sub.add_parser('stats', help='Streaks and weekly completion')
    st.add_argument('--days', type=int, default=None, help='Window in days (default: stats.days from config)')

    sub.add_parser('serve', help='Run the API server and background sync')
    return parser


def _print(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _day_dict(record) -> dict:
    return {
        "date": record.date,
        "synced": record.synced,
        "entries": [e._asdict() for e in record.entries],
    }


def main(argv: Optional[List[str]] = None) -> int:
    setup_basic_logging()
    args = build_parser().parse_args(argv)

    app = HijraApp(config_path=args.config, watch_config=args.command == 'serve')
    if args.command == 'serve':
        app.run()
        return 0

    if args.offline:
        app.connectivity.set_online(False)
    else:
        app.connectivity.check()

    user_id = args.user or app.user_id
    service = app.sync_service
    try:
        if args.command == 'sync':
            _print(service.sync_all()._asdict())
            return 0
        if not user_id:
            logging.error("No user id: pass --user or set user_id in the config file")
            return 2
        day = getattr(args, 'date', None) or date.today().isoformat()
        if args.command == 'show':
            _print(_day_dict(service.resolve_day(user_id, day)))
        elif args.command == 'advance':
            service.resolve_day(user_id, day)
            write = service.update_status(user_id, day, args.slot)
            # Push now rather than waiting out the debounce window
            service.scheduler.flush()
            _print({"state": write.state, **_day_dict(service.cached_day(user_id, write.date) or write.record)})
        elif args.command == 'stats':
            result = service.calculate_prayer_streaks(user_id, days=args.days)
            data = result._asdict()
            data["prayer_stats"] = {k: v._asdict() for k, v in result.prayer_stats.items()}
            _print(data)
        return 0
    finally:
        app.shutdown()


if __name__ == "__main__":
    sys.exit(main())
