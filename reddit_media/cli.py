from __future__ import annotations

import argparse
import json
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Sequence

from .config import load_config, resolve_config_path
from .config_schema import AppConfig
from .dispatcher import MediaDispatcher, build_dispatcher
from .errors import AuthError, ConfigError, EntityFetchError, MediaFetchError
from .event_log import EventLogger
from .media import ExtractedMedia, media_to_dict
from .normalize import post_descriptions_from_listing
from .post import PostDescription
from .redgifs import RedgifsClient, RedgifsTokenClient
from .sizing import LayoutInsets
from .streamable import StreamableClient


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reddit_media")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file (defaults to $REDDIT_MEDIA_CONFIG, then built-ins).",
    )
    parser.add_argument(
        "--log",
        default=None,
        help="Write JSON-lines events to this file instead of stderr.",
    )
    parser.add_argument(
        "--log-level",
        default="WARN",
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        help="Minimum event level to record.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser(
        "extract",
        help="Decide the media kind for every post in a Reddit JSON file.",
    )
    extract.add_argument("--post", required=True, help="Path to a Reddit post/listing JSON file.")
    extract.add_argument("--compact", action="store_true", help="Use compact-mode thumbnails.")
    extract.add_argument("--width", type=float, default=390.0, help="Available content width.")
    extract.add_argument("--inner-padding", type=float, default=0.0)
    extract.add_argument("--outer-padding", type=float, default=0.0)
    extract.add_argument(
        "--no-self-fetch",
        action="store_true",
        help="Do not fetch linked subreddits/posts/comments/users in the background.",
    )
    extract.set_defaults(_handler=_cmd_extract)

    token = subparsers.add_parser("redgifs-token", help="Fetch a temporary Redgifs token.")
    token.set_defaults(_handler=_cmd_redgifs_token)

    gif = subparsers.add_parser("redgifs-gif", help="Look up a Redgifs video by id.")
    gif.add_argument("gif_id")
    gif.set_defaults(_handler=_cmd_redgifs_gif)

    streamable = subparsers.add_parser("streamable", help="Look up a Streamable video.")
    streamable.add_argument("short_code")
    streamable.set_defaults(_handler=_cmd_streamable)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False, sort_keys=True))


def _read_json(path: str | Path) -> Any:
    p = Path(path)
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Failed to read post file: {p}") from e
    except ValueError as e:
        raise ConfigError(f"Post file is not valid JSON: {p}: {e}") from e


def extract_results(
    dispatcher: MediaDispatcher,
    posts: Sequence[PostDescription],
    *,
    compact: bool,
    available_width: float,
    insets: LayoutInsets | None,
) -> list[dict[str, Any]]:
    """
    Dispatch every post, then close the dispatcher and render the results.

    Closing waits for background entity fetches, so rendered entities show their
    settled state.
    """
    matched: list[tuple[PostDescription, str | None, ExtractedMedia | None]] = []
    with dispatcher:
        for post in posts:
            rule, media = dispatcher.extract_with_rule(
                post, compact=compact, available_width=available_width, insets=insets
            )
            matched.append((post, rule, media))

    return [
        {
            "post_id": post.post_id,
            "url": post.url,
            "rule": rule,
            "media": media_to_dict(media),
        }
        for post, rule, media in matched
    ]


def _cmd_extract(args: argparse.Namespace, cfg: AppConfig, log: EventLogger) -> int:
    posts = post_descriptions_from_listing(_read_json(args.post))
    insets = LayoutInsets(
        inner_horizontal=float(args.inner_padding),
        outer_horizontal=float(args.outer_padding),
    )

    self_fetch = False if args.no_self_fetch else None
    results = extract_results(
        build_dispatcher(cfg, logger=log, self_fetch=self_fetch),
        posts,
        compact=bool(args.compact),
        available_width=float(args.width),
        insets=insets,
    )

    print(f"post_count={len(posts)}")
    _print_json(results)
    return 0


def _cmd_redgifs_token(args: argparse.Namespace, cfg: AppConfig, log: EventLogger) -> int:
    tokens = RedgifsTokenClient(cfg.redgifs, logger=log)
    token = tokens.get_token()
    print(f"token={token}")
    print(f"expiry={tokens.expiry.isoformat() if tokens.expiry else 'unknown'}")
    return 0


def _cmd_redgifs_gif(args: argparse.Namespace, cfg: AppConfig, log: EventLogger) -> int:
    tokens = RedgifsTokenClient(cfg.redgifs, logger=log)
    gif = RedgifsClient(tokens, cfg.redgifs, logger=log).fetch_gif(args.gif_id)
    _print_json(
        {
            "gif_id": gif.gif_id,
            "url": gif.url,
            "width": gif.width,
            "height": gif.height,
            "username": gif.username,
            "created": gif.created.isoformat() if gif.created else None,
        }
    )
    return 0


def _cmd_streamable(args: argparse.Namespace, cfg: AppConfig, log: EventLogger) -> int:
    video = StreamableClient(cfg.streamable, logger=log).fetch_video(args.short_code)
    _print_json(
        {
            "short_code": video.short_code,
            "url": video.url,
            "width": video.width,
            "height": video.height,
        }
    )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    with ExitStack() as stack:
        try:
            if args.log:
                log = stack.enter_context(EventLogger.open(args.log, min_level=args.log_level))
            else:
                log = EventLogger.to_stream(sys.stderr, min_level=args.log_level)

            cfg = load_config(resolve_config_path(args.config))
            handler = getattr(args, "_handler")
            return int(handler(args, cfg, log))
        except ConfigError as e:
            _eprint(str(e))
            return 2
        except (AuthError, MediaFetchError, EntityFetchError) as e:
            _eprint(str(e))
            return 3
        except KeyboardInterrupt:
            _eprint("Interrupted")
            return 130
        except Exception as e:
            _eprint(f"Unexpected error: {e}")
            return 1
