"""
Random chat nicknames.

Bots and servers are wary of repeated connects from the same nick, so
each session gets a fresh one unless the user pins it.
"""

import random

ADJECTIVES = [
    "Neon", "Cosmic", "Turbo", "Silent", "Electric", "Quantum",
    "Hidden", "Mystic", "Clever", "Swift", "Brave", "Pixel",
    "Sneaky", "Bold", "Lucky", "Happy", "Fierce", "Calm"
]

ANIMALS = [
    "Fox", "Panda", "Gopher", "Bear", "Snail", "Owl",
    "Wolf", "Tiger", "Hawk", "Dolphin", "Penguin", "Falcon",
    "Eagle", "Lion", "Shark", "Whale", "Octopus", "Duck"
]

MAX_NICK_LENGTH = 16


def generate_nickname() -> str:
    """e.g. 'SwiftOwl4821'."""
    nick = f"{random.choice(ADJECTIVES)}{random.choice(ANIMALS)}{random.randint(1000, 9999)}"
    return nick[:MAX_NICK_LENGTH]
