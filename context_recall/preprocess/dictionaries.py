"""Built-in correction and synonym tables for query preprocessing."""

from __future__ import annotations

# Known misspellings → corrections.  Keys containing a space are applied as
# phrase-level substring replacements after the word-level pass.
CORRECTIONS: dict[str, str] = {
    # Missing apostrophes
    "whats": "what's",
    "dont": "don't",
    "wont": "won't",
    "cant": "can't",
    "didnt": "didn't",
    "doesnt": "doesn't",
    "isnt": "isn't",
    "arent": "aren't",
    "havent": "haven't",
    "hasnt": "hasn't",
    "wouldnt": "wouldn't",
    "couldnt": "couldn't",
    "shouldnt": "shouldn't",
    "youre": "you're",
    "theyre": "they're",
    "thats": "that's",
    "ive": "i've",
    "youve": "you've",
    "weve": "we've",
    "theyve": "they've",
    "wheres": "where's",
    "hows": "how's",
    # Common typos
    "teh": "the",
    "taht": "that",
    "nad": "and",
    "adn": "and",
    "waht": "what",
    "wnat": "want",
    "ahve": "have",
    "hvae": "have",
    "wich": "which",
    "untill": "until",
    "recieve": "receive",
    "acheive": "achieve",
    "beleive": "believe",
    "seperate": "separate",
    "occured": "occurred",
    "tiem": "time",
    "tmie": "time",
    "itme": "time",
    "todya": "today",
    "tomorow": "tomorrow",
    "tommorow": "tomorrow",
    "tommorrow": "tomorrow",
    "yestarday": "yesterday",
    "yesturday": "yesterday",
    "minuets": "minutes",
    "mintues": "minutes",
    "calender": "calendar",
    "wether": "weather",
    "wheather": "weather",
    "weahter": "weather",
    "temprature": "temperature",
    "tempature": "temperature",
    "forcast": "forecast",
    "locaiton": "location",
    "adress": "address",
    "neer": "near",
    "remeber": "remember",
    "rember": "remember",
    # App vocabulary
    "habbit": "habit",
    "habbits": "habits",
    "habts": "habits",
    "excersize": "exercise",
    "excercise": "exercise",
    "pomadoro": "pomodoro",
    "pomidoro": "pomodoro",
    "pommodoro": "pomodoro",
    "streek": "streak",
    "streks": "streaks",
    "favroite": "favorite",
    "favourtie": "favorite",
    "picutre": "picture",
    "picutres": "pictures",
    "phoot": "photo",
    "photoes": "photos",
    # Phrases
    "what time it is": "what time is it",
    "check in to": "check into",
}

# Term → alternate phrasings used to build query expansions.
SYNONYMS: dict[str, list[str]] = {
    # General
    "show": ["display", "view", "see", "look at", "check"],
    "get": ["fetch", "retrieve", "find", "show", "display"],
    "list": ["show", "display", "enumerate", "get all"],
    "count": ["how many", "number of", "total", "amount"],
    "create": ["make", "add", "new", "build"],
    "delete": ["remove", "clear", "erase", "destroy"],
    "update": ["change", "modify", "edit", "alter"],
    # Time
    "today": ["today's", "current day", "this day"],
    "yesterday": ["yesterday's", "previous day", "last day"],
    "tomorrow": ["tomorrow's", "next day", "following day"],
    "now": ["current", "present", "at this moment"],
    "recent": ["latest", "newest", "most recent", "last"],
    # Environment
    "hot": ["warm", "temperature", "heat"],
    "cold": ["chilly", "temperature", "freezing"],
    "raining": ["rain", "wet weather", "showers"],
    "nearby": ["near me", "around here", "close by"],
    # App vocabulary
    "habits": ["routines", "dailies", "daily habits"],
    "streak": ["chain", "consecutive days", "run"],
    "notes": ["memos", "reminders", "ideas", "thoughts"],
    "picture": ["photo", "image", "pic"],
    "pictures": ["photos", "images", "pics", "gallery"],
    "favorite": ["starred", "liked", "saved", "bookmarked"],
    "favorites": ["starred items", "liked items", "saved items"],
    "timer": ["pomodoro", "focus session", "work session"],
    "break": ["rest", "pause", "intermission"],
    "dogs": ["puppies", "pups", "canines"],
    "space": ["cosmos", "universe", "astronomy", "nasa"],
    # Phrases
    "how many": ["count", "number of", "total"],
    "near me": ["nearby", "around here", "in my area"],
    "picture of the day": ["apod", "daily picture", "photo of the day"],
}

# Upper bound on expansions returned per query.
MAX_EXPANSIONS = 5
