#!/usr/bin/env python3
"""
Simple demo of miniqueue delivery settlement.

Produces a few messages, then consumes them, acking most, nacking one
(redelivered immediately) and sending one to the back of the topic.
"""

import argparse
import json
import tempfile

from miniqueue import NoMessageAvailableError, open_store
from miniqueue.utils.config import get_config
from miniqueue.utils.logging import configure_from_config


def main():
    parser = argparse.ArgumentParser(description='miniqueue demo')
    parser.add_argument('--data-dir', default=None, help='Store directory (default: temporary)')
    parser.add_argument('--topic', default='demo-topic', help='Topic name')
    parser.add_argument('--config', default=None, help='YAML configuration file')
    parser.add_argument('--log-level', default='WARNING', help='Logging level')
    args = parser.parse_args()

    config = get_config(args.config)
    config.set('logging.level', args.log_level)
    config.set('logging.format', 'console')
    configure_from_config(config)

    data_dir = args.data_dir or tempfile.mkdtemp(prefix='miniqueue-demo-')
    store = open_store(data_dir, config)

    print("\n[1] Producing 5 messages...")
    for i in range(5):
        payload = json.dumps({'id': i, 'data': f'Hello from miniqueue #{i}'}).encode('utf-8')
        offset = store.insert(args.topic, payload)
        print(f"  sent message {i}: offset={offset}")

    print("\n[2] Consuming...")
    nacked = False
    backed = False
    while True:
        try:
            payload, offset = store.get_next(args.topic)
        except NoMessageAvailableError:
            break

        data = json.loads(payload.decode('utf-8'))

        if data['id'] == 1 and not nacked:
            store.nack(args.topic, offset)
            nacked = True
            print(f"  nack  offset={offset} id={data['id']} (redelivered next)")
        elif data['id'] == 2 and not backed:
            new_offset = store.back(args.topic, offset)
            backed = True
            print(f"  back  offset={offset} id={data['id']} (requeued at offset {new_offset})")
        else:
            store.ack(args.topic, offset)
            print(f"  ack   offset={offset} id={data['id']}")

    info = store.topic_info(args.topic)
    print(f"\n[3] write_offset={info.write_offset} read_cursor={info.read_cursor}")

    if args.data_dir:
        store.close()
    else:
        store.destroy()


if __name__ == '__main__':
    main()
