"""Example: two logical subscribers sharing one physical topic subscription (in-memory transport)."""

import asyncio
import logging

from trigger_pubsub import InMemoryTransport, PubSubConfig, TriggerPubSub

logging.basicConfig(level=logging.INFO)


async def main() -> None:
    transport = InMemoryTransport()
    pubsub = TriggerPubSub(
        transport,
        PubSubConfig(
            trigger_transform=lambda trigger, options: f"{trigger}.{options['repo']}" if options else trigger,
            publish_options=lambda topic: {"qos": 1},
        ),
    )

    def on_comment(message):
        print("reviewer got", message)

    def on_comment_audit(message):
        print("audit got", message)

    first = await pubsub.subscribe("comments", on_comment, {"repo": "api"})
    second = await pubsub.subscribe("comments", on_comment_audit, {"repo": "api"})
    print("physical subscriptions:", transport.subscribed_topics)

    await pubsub.publish("comments.api", {"author": "sam", "body": "LGTM"})

    pubsub.unsubscribe(first)
    pubsub.unsubscribe(second)
    await pubsub.close()
    print("physical subscriptions:", transport.subscribed_topics)


if __name__ == "__main__":
    asyncio.run(main())
