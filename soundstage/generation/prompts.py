"""
Prompt templates for generated music and ambience.
"""

from typing import Any, Optional

from soundstage.config import GenerationParams

DEFAULT_MOOD = "exploration"

MOOD_PROMPTS = {
    "battle": (
        "Epic orchestral battle music with intense drums, brass fanfares, and dramatic string "
        "ostinatos. Fantasy game style with heroic themes and powerful percussion. "
        "Evokes legendary conflicts."
    ),
    "exploration": (
        "Ambient fantasy exploration music with soft strings, ethereal woodwinds, and gentle harp "
        "arpeggios. Open soundscape with subtle percussion and a sense of wonder. "
        "Peaceful yet adventurous."
    ),
    "mystery": (
        "Dark mysterious music with subtle tension, ethereal pads, and haunting melodies. Minor "
        "tonality with sparse instrumentation and occasional dissonance. Fantasy RPG style with "
        "enigmatic qualities."
    ),
    "celebration": (
        "Triumphant victory fanfare with uplifting brass, jubilant strings, and festive "
        "percussion. Major key orchestral fantasy style with memorable melodic themes and rich "
        "harmonies."
    ),
    "danger": (
        "Tense suspenseful music with low drones, percussion ostinatos, and unsettling string "
        "textures. Dark fantasy style with building tension and occasional stingers. Creates a "
        "sense of impending threat."
    ),
    "peaceful": (
        "Gentle pastoral fantasy music with flowing flutes, delicate harps, and warm strings. "
        "Medieval style with folk-like melodies in major keys. Serene atmosphere with natural "
        "ambience."
    ),
    "sad": (
        "Melancholic emotional music with sorrowful solo violin, piano motifs, and subtle cello "
        "lines. Fantasy ballad style with minor harmonies and expressive rubato. Evokes deep "
        "reflection and loss."
    ),
    "dramatic": (
        "Grand dramatic orchestral music with full symphony, powerful choir, and epic percussion. "
        "Sweeping melodic themes with rich harmonies and dynamic contrasts. Cinematic fantasy "
        "style with emotional impact."
    ),
}

MUSICAL_TERMS = {
    "battle": ["heroic brass", "percussion hits", "6/8 time signature", "marcato strings"],
    "exploration": ["flowing arpeggios", "legato melodies", "ambient pads", "lydian mode"],
    "mystery": ["whole tone scale", "diminished chords", "tremolo strings", "chromatic movement"],
    "celebration": ["fanfare", "major key", "dotted rhythms", "jubilant woodwinds"],
    "danger": ["ostinato", "dissonant harmonies", "minor key", "low register"],
    "peaceful": ["aeolian mode", "legato phrasing", "gentle dynamics", "pastoral themes"],
    "sad": ["adagio tempo", "minor key", "suspended chords", "expressive rubato"],
    "dramatic": ["crescendo", "timpani", "full orchestra", "key modulation"],
}

QUALITY_ENHANCERS = [
    "high quality stereo recording",
    "clear instrument separation",
    "professional composition",
    "dynamic range",
    "no vocals",
    "fantasy orchestral arrangement",
]

# Keyword -> mood, checked in order
MOOD_KEYWORDS = [
    (("battle", "combat"), "battle"),
    (("mystery", "enigma"), "mystery"),
    (("victory", "triumph", "celebration"), "celebration"),
    (("danger", "threat"), "danger"),
    (("peaceful", "calm"), "peaceful"),
    (("sad", "sorrow"), "sad"),
    (("dramatic", "intense"), "dramatic"),
    (("exploration", "explore"), "exploration"),
]

AMBIENCE_PROMPTS = {
    "forest": "Forest ambience with birds chirping, leaves rustling, and gentle wind",
    "cave": "Dark cave ambience with water drops, distant echoes, and subtle wind",
    "tavern": "Medieval tavern ambience with murmuring crowds, clinking glasses, and distant music",
    "ocean": "Ocean waves crashing, seagulls, and wind over water",
    "city": "Medieval city ambience with distant crowds, horse carriages, and street vendors",
    "dungeon": "Dark dungeon ambience with chains, distant moans, and eerie sounds",
    "camp": "Nighttime campfire ambience with crackling fire and nocturnal creatures",
    "storm": "Thunder, heavy rain, and howling wind ambience",
}

AMBIENCE_SUFFIX = (
    "high quality environmental sound effects, ultra-realistic ambience, no music, no melody, "
    "pure atmospheric sounds, immersive 3D audio space"
)


def resolve_mood(atmosphere: Optional[str]) -> str:
    """Map free text to a known mood; unknown text maps to exploration."""
    if not atmosphere:
        return DEFAULT_MOOD
    text = atmosphere.lower()
    for keywords, mood in MOOD_KEYWORDS:
        if any(word in text for word in keywords):
            return mood
    return DEFAULT_MOOD


def build_music_prompt(atmosphere: Optional[str]) -> str:
    mood = resolve_mood(atmosphere)
    terms = ", ".join(MUSICAL_TERMS[mood])
    return f"{MOOD_PROMPTS[mood]} {terms}. {', '.join(QUALITY_ENHANCERS)}."


def build_ambience_prompt(ambience: str) -> str:
    """
    Prompt for an ambience type.

    Raises:
        KeyError: If the ambience type is unknown
    """
    base = AMBIENCE_PROMPTS[ambience.lower()]
    return f"{base}, {AMBIENCE_SUFFIX}"


def generation_input(kind: str, key: str, params: GenerationParams) -> dict[str, Any]:
    """
    Full job API input for a music or ambience request.

    Args:
        kind: "music" or "ambience"
        key: Mood (free text allowed) or ambience type
        params: Model parameters for this kind
    """
    if kind == "ambience":
        data = {"prompt": build_ambience_prompt(key)}
    else:
        data = {"prompt": build_music_prompt(key)}
    data.update(params.to_input())
    data["output_format"] = "mp3"
    data["normalization_strategy"] = "peak"
    return data
