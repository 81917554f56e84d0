"""
Open many short-lived connections at once, spread over several ports.

Pairs with examples/discard_server.py. Every connection is opened from its
own thread and closed right away, which piles connections up in the
listeners' accept queues faster than one accept() per wakeup would clear.

Run:
    python examples/burst_client.py --count 10000
"""

import socket
import argparse
import threading


DEFAULT_TARGETS = ["127.0.0.1:9009", "127.0.0.1:9999", "127.0.0.1:19999"]


def _split(target):
    host, _, port = target.rpartition(":")
    return host, int(port)


def main():
    parser = argparse.ArgumentParser(description="Burst of connections to discard listeners")
    parser.add_argument("--count", "-n", type=int, default=1000, help="Connections to open")
    parser.add_argument("--target", "-t", action="append", default=None,
                        metavar="HOST:PORT", help="Target address (repeatable)")
    args = parser.parse_args()

    targets = [_split(t) for t in (args.target or DEFAULT_TARGETS)]
    failures = []
    lock = threading.Lock()

    def connect(index):
        target = targets[index % len(targets)]
        try:
            with socket.create_connection(target, timeout=5):
                pass
        except OSError as e:
            with lock:
                failures.append((index, target, e))
            return
        print(f"#{index}, {target[0]}:{target[1]}")

    threads = [threading.Thread(target=connect, args=(i,)) for i in range(args.count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    print(f"{args.count - len(failures)} connected, {len(failures)} failed")
    for index, target, error in failures[:10]:
        print(f"  #{index} {target}: {error}")


if __name__ == "__main__":
    main()
