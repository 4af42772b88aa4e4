"""End-to-end tests of the TriggerPubSub API over a recording transport."""

import asyncio

import pytest

from trigger_pubsub import (
    InMemoryTransport,
    TransportPublishError,
    TriggerPubSub,
    UnknownSubscriptionError,
)


class TestTriggerPubSub:

    @pytest.mark.asyncio
    async def test_subscriber_called_when_message_published(self, pubsub):
        received = []
        sub_id = await pubsub.subscribe("Posts", received.append)

        assert isinstance(sub_id, int)
        await pubsub.publish("Posts", "test")

        assert received == ["test"]
        pubsub.unsubscribe(sub_id)

    @pytest.mark.asyncio
    async def test_unsubscribe_issues_physical_unsubscribe(self, pubsub, transport):
        sub_id = await pubsub.subscribe("Posts", lambda msg: None)
        pubsub.unsubscribe(sub_id)
        await pubsub.close()

        assert transport.count("unsubscribe") == 1
        assert transport.calls[-1] == ("unsubscribe", "Posts")
        assert transport.subscribed_topics == []

    @pytest.mark.asyncio
    async def test_unsubscribe_cleans_up_and_rejects_second_call(self, pubsub):
        sub_id = await pubsub.subscribe("Posts", lambda msg: None)
        second_id = await pubsub.subscribe("Posts", lambda msg: None)

        assert pubsub.registry.has_subscription(sub_id)
        pubsub.unsubscribe(sub_id)
        assert not pubsub.registry.has_subscription(sub_id)

        with pytest.raises(UnknownSubscriptionError, match=f'There is no subscription of id "{sub_id}"'):
            pubsub.unsubscribe(sub_id)
        pubsub.unsubscribe(second_id)

    @pytest.mark.asyncio
    async def test_keeps_physical_subscription_while_other_subscribers_remain(self, pubsub, transport):
        received, unexpected = [], []
        ids = []

        def on_message(msg):
            received.append(msg)
            pubsub.unsubscribe(ids[1])

        ids.append(await pubsub.subscribe("Posts", unexpected.append))
        ids.append(await pubsub.subscribe("Posts", on_message))

        pubsub.unsubscribe(ids[0])
        assert transport.count("unsubscribe") == 0

        await pubsub.publish("Posts", "test")
        assert received == ["test"]
        assert unexpected == []
        await pubsub.close()
        assert transport.count("unsubscribe") == 1

    @pytest.mark.asyncio
    async def test_two_subscribers_one_physical_subscribe(self, pubsub, transport):
        first_calls, second_calls = [], []
        first = await pubsub.subscribe("Posts", first_calls.append)
        second = await pubsub.subscribe("Posts", second_calls.append)

        assert transport.count("subscribe") == 1
        await pubsub.publish("Posts", "test")
        assert first_calls == ["test"]
        assert second_calls == ["test"]

        pubsub.unsubscribe(first)
        pubsub.unsubscribe(second)
        await pubsub.close()
        assert transport.subscribed_topics == []

    @pytest.mark.asyncio
    async def test_subscribe_unsubscribe_subscribe_order(self, pubsub, transport):
        sub_id = await pubsub.subscribe("Posts", lambda msg: None)
        pubsub.unsubscribe(sub_id)
        await pubsub.subscribe("Posts", lambda msg: None)
        await pubsub.close()

        assert transport.kinds() == ["subscribe", "unsubscribe", "subscribe"]
        assert transport.subscribed_topics == ["Posts"]

    @pytest.mark.asyncio
    async def test_publish_objects(self, pubsub):
        received = []
        await pubsub.subscribe("Posts", received.append)

        await pubsub.publish("Posts", {"comment": "This is amazing"})

        assert received == [{"comment": "This is amazing"}]

    @pytest.mark.asyncio
    async def test_delivers_only_to_matching_topic(self, pubsub):
        posts, comments = [], []
        await pubsub.subscribe("Posts", posts.append)
        await pubsub.subscribe("Comments", comments.append)

        await pubsub.publish("Posts", "for posts")

        assert posts == ["for posts"]
        assert comments == []

    def test_unknown_id_raises(self, pubsub):
        with pytest.raises(UnknownSubscriptionError, match='There is no subscription of id "123"'):
            pubsub.unsubscribe(123)

    @pytest.mark.asyncio
    async def test_trigger_transform(self, make_pubsub, transport):
        received = []
        pubsub = make_pubsub(trigger_transform=lambda trigger, options: f"{trigger}.{options['repoName']}")
        sub_id = await pubsub.subscribe("comments", received.append, {"repoName": "graphql-mqtt-subscriptions"})

        assert transport.calls[0][1] == "comments.graphql-mqtt-subscriptions"

        await pubsub.publish("comments", "not delivered")
        await pubsub.publish("comments.graphql-mqtt-subscriptions", "test")
        await pubsub.publish("comments", "also test", {"repoName": "graphql-mqtt-subscriptions"})

        assert received == ["test", "also test"]
        pubsub.unsubscribe(sub_id)

    @pytest.mark.asyncio
    async def test_base64_encoding_round_trip(self, make_pubsub, transport):
        received = []
        pubsub = make_pubsub(message_encoding="base64")
        await pubsub.subscribe("comments", received.append)

        await pubsub.publish("comments", "test")

        assert transport.calls[-1][2] == b"InRlc3Qi"
        assert received == ["test"]

    @pytest.mark.asyncio
    async def test_publish_options_per_topic(self, make_pubsub, transport):
        received = []

        async def publish_options(topic):
            return {"qos": 2 if topic == "comments" else None}

        pubsub = make_pubsub(publish_options=publish_options)
        await pubsub.subscribe("comments", received.append)
        await pubsub.publish("comments", "test")

        publish_call = transport.calls[-1]
        assert publish_call[0] == "publish"
        assert publish_call[3]["qos"] == 2
        assert received == ["test"]

    @pytest.mark.asyncio
    async def test_subscribe_options_and_ack_hook(self, make_pubsub, transport):
        granted = []
        holder = {}

        def on_subscribe_ack(subscription_id, ack):
            holder["pubsub"].unsubscribe(subscription_id)
            granted.append(ack)

        pubsub = make_pubsub(
            subscribe_options=lambda topic: {"qos": 2 if topic == "comments" else None},
            on_subscribe_ack=on_subscribe_ack,
        )
        holder["pubsub"] = pubsub
        await pubsub.subscribe("comments", lambda msg: None)
        await pubsub.close()

        assert granted == [{"qos": 2, "topic": "comments"}]
        assert transport.count("unsubscribe", "comments") == 1

    @pytest.mark.asyncio
    async def test_publish_error_is_wrapped(self, pubsub, transport):
        refused = ConnectionError("refused")
        transport.publish_error = refused

        with pytest.raises(TransportPublishError) as exc_info:
            await pubsub.publish("Posts", "test")

        assert exc_info.value.topic == "Posts"
        assert exc_info.value.__cause__ is refused

    @pytest.mark.asyncio
    async def test_exactly_one_physical_publish(self, pubsub, transport):
        await pubsub.subscribe("Posts", lambda msg: None)
        await pubsub.subscribe("Posts", lambda msg: None)

        await pubsub.publish("Posts", "test")

        assert transport.count("publish") == 1

    @pytest.mark.asyncio
    async def test_defaults_to_in_memory_transport(self):
        pubsub = TriggerPubSub()
        received = []
        await pubsub.subscribe("Posts", received.append)
        await pubsub.publish("Posts", "test")

        assert isinstance(pubsub.transport, InMemoryTransport)
        assert received == ["test"]

    @pytest.mark.asyncio
    async def test_resubscribe_right_after_last_unsubscribe_stays_subscribed(self):
        transport = InMemoryTransport()
        pubsub = TriggerPubSub(transport)
        received = []

        sub_id = await pubsub.subscribe("Posts", lambda msg: None)
        pubsub.unsubscribe(sub_id)
        await pubsub.subscribe("Posts", received.append)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert transport.subscribed_topics == ["Posts"]

        await pubsub.publish("Posts", "test")
        assert received == ["test"]

    @pytest.mark.asyncio
    async def test_resubscribe_after_unwanted_ack_stays_subscribed(self, pubsub, transport):
        transport.hold_subscribe = True
        first = asyncio.create_task(pubsub.subscribe("Posts", lambda msg: None))
        while transport.count("subscribe") == 0:
            await asyncio.sleep(0)
        pubsub.unsubscribe(1)
        transport.release()
        await first

        received = []
        await pubsub.subscribe("Posts", received.append)
        await pubsub.close()

        assert transport.kinds() == ["subscribe", "unsubscribe", "subscribe"]
        assert transport.subscribed_topics == ["Posts"]
        await pubsub.publish("Posts", "test")
        assert received == ["test"]
