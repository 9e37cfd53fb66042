import sys
import asyncio
import argparse

from core import utils
from core.config import ConfigManager
from core.factory import build_controller
from core.models import FeedSelection, FolderSelection, VirtualCollection, SearchQuery, LATEST, SAVED
from core.shortcuts import default_registry


def print_tree(controller):
    print(f"{controller.backend.get_name()}: {controller.tree.total_unread()} unread")
    for folder in controller.tree.folders:
        print(folder.name)
        for feed in folder.feeds:
            flags = " [error]" if feed.has_error else ""
            unread = f" ({feed.unread_count})" if feed.unread_count else ""
            print(f"  {feed.id:>4}  {feed.name}{unread}{flags}")


def print_articles(articles):
    for a in articles:
        mark = "*" if not a.is_read else " "
        saved = "S" if a.is_saved else " "
        print(f"{mark}{saved} {a.id:>6}  {utils.format_timestamp(a.timestamp):16}  {a.title}")


def parse_args(argv):
    parser = argparse.ArgumentParser(description="FeedMee headless client")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("refresh", help="Refresh stale feeds once and print the folder tree")
    sub.add_parser("watch", help="Keep refreshing on the configured interval")
    sub.add_parser("tree", help="Print folders and feeds")
    add = sub.add_parser("add", help="Add a feed by URL (pages advertising a feed work too)")
    add.add_argument("url")
    add.add_argument("--folder", type=int, default=None)
    ls = sub.add_parser("list", help="List articles")
    group = ls.add_mutually_exclusive_group()
    group.add_argument("--feed", type=int)
    group.add_argument("--folder", type=int)
    group.add_argument("--saved", action="store_true")
    group.add_argument("--search")
    ls.add_argument("--pages", type=int, default=1)
    ls.add_argument("--oldest-first", action="store_true")
    sub.add_parser("shortcuts", help="Print keyboard shortcuts")
    return parser.parse_args(argv)


def selection_for(args):
    if args.search:
        return SearchQuery(args.search)
    if args.feed:
        return FeedSelection(args.feed)
    if args.folder:
        return FolderSelection(args.folder)
    if args.saved:
        return VirtualCollection(SAVED)
    return VirtualCollection(LATEST)


async def run(args, config_manager) -> int:
    controller = build_controller(config_manager, alert=lambda title, msg: print(f"{title}: {msg}", file=sys.stderr))
    try:
        await controller.load_settings()
        await controller.tree.reload()
        command = args.command or "refresh"

        if command == "refresh":
            results = await controller.refresh_all()
            failed = sum(1 for ok in results.values() if not ok)
            print(f"Refreshed {len(results)} feed(s), {failed} failed")
            print_tree(controller)
        elif command == "watch":
            task = controller.start_auto_refresh()
            await task
        elif command == "tree":
            print_tree(controller)
        elif command == "add":
            feed_id = await controller.add_feed(args.url, args.folder)
            if feed_id is None:
                return 1
            print(f"Added feed {feed_id}")
        elif command == "list":
            controller.sort_desc = not args.oldest_first
            await controller.select(selection_for(args))
            for _ in range(max(0, args.pages - 1)):
                if not controller.cache.has_more:
                    break
                await controller.load_more()
            print_articles(controller.cache.articles)
        await controller.drain()
        return 0
    finally:
        await controller.close()


def main(argv=None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    if args.command == "shortcuts":
        registry = default_registry()
        for category, definitions in registry.by_category().items():
            print(category)
            for d in definitions:
                print(f"  {registry.display(d.command):16} {d.description}")
        return 0

    config_manager = ConfigManager()
    utils.setup_logging(config_manager.get("log_level", "info"))
    try:
        return asyncio.run(run(args, config_manager))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
