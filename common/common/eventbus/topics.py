from __future__ import annotations

from .core import Topic


TOPIC_CREDIT = Topic("story-app.credit")
TOPIC_PAYMENT = Topic("story-app.payment")
