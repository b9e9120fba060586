"""
Change feed over model signals.

subscribe_to_changes() calls back with the refreshed collection of a kind
whenever one of its records is saved or deleted, once the surrounding
transaction commits. It returns a function that cancels the subscription.
"""
import itertools

from django.db import transaction
from django.db.models.signals import post_delete, post_save

from apps.core.repository import fetch_entities, get_entity_model

_subscription_ids = itertools.count(1)


def subscribe_to_changes(kind, callback, scope=None):
    model = get_entity_model(kind)
    dispatch_uid = f'realtime:{kind}:{next(_subscription_ids)}'

    def deliver():
        callback(fetch_entities(kind, scope))

    def on_change(sender, instance, **kwargs):
        transaction.on_commit(deliver)

    post_save.connect(on_change, sender=model, weak=False, dispatch_uid=dispatch_uid)
    post_delete.connect(on_change, sender=model, weak=False, dispatch_uid=dispatch_uid)

    def unsubscribe():
        post_save.disconnect(sender=model, dispatch_uid=dispatch_uid)
        post_delete.disconnect(sender=model, dispatch_uid=dispatch_uid)

    return unsubscribe
