# aroundu/core/names.py
# -*- coding: utf-8 -*-
"""
Anonymous "Adjective Noun" display names for fresh participants.
"""

from __future__ import annotations

import random
from typing import Optional

ADJECTIVES = (
    "Amber", "Brave", "Calm", "Clever", "Cosmic", "Curious", "Dusty", "Eager",
    "Fuzzy", "Gentle", "Golden", "Happy", "Hidden", "Jolly", "Lucky", "Mellow",
    "Misty", "Noble", "Quiet", "Rapid", "Rusty", "Silent", "Sleepy", "Sunny",
    "Swift", "Velvet", "Wandering", "Witty", "Wild", "Zesty",
)

NOUNS = (
    "Badger", "Comet", "Cactus", "Dolphin", "Falcon", "Fern", "Fox", "Glacier",
    "Harbor", "Heron", "Koala", "Lantern", "Maple", "Meadow", "Otter", "Panda",
    "Pebble", "Penguin", "Pine", "Raven", "River", "Sparrow", "Tiger", "Tulip",
    "Walrus", "Willow", "Wolf", "Yak", "Zebra", "Nomad",
)


def generate_display_name(rng: Optional[random.Random] = None) -> str:
    r = rng or random
    return f"{r.choice(ADJECTIVES)} {r.choice(NOUNS)}"
