"""
Prompt builders for audioguide generation and translation.

The same prompt is sent to every candidate so fallback does not change what
is being asked for.
"""

from typing import List, Mapping, Optional

DEFAULT_NUM_STOPS = 5
DEFAULT_STOP_LENGTH = 300
MAX_NUM_STOPS = 30

GUIDE_SYSTEM_PROMPT = (
    'You are an expert audioguide creator specializing in cultural heritage sites. '
    'You write immersive, detailed audioguides that are educational, engaging, '
    'and professionally narrated.'
)

TRANSLATION_SYSTEM_PROMPT = (
    'You are a professional translator specializing in audioguide and tourism content. '
    'You translate text accurately while preserving formatting and structure.'
)


# (opening stops, repeated middle section, closing stops) per guide type
STOP_OUTLINES = {
    'museum': (
        ['INTRODUCTION - Welcome and overview', 'HISTORY - Museum and building history'],
        'KEY COLLECTIONS - Major exhibitions',
        ['PRACTICAL TIPS - Visitor information'],
    ),
    'city': (
        ['INTRODUCTION - Welcome to {destination}', 'HISTORY - Historical overview'],
        'TOP ATTRACTIONS - Must-see landmarks and hidden gems',
        ['LOCAL CUISINE & FOOD - Traditional dishes and restaurants',
         'PRACTICAL TIPS - Transportation and customs'],
    ),
    'trail': (
        ['TRAILHEAD - Starting point overview', 'NATURAL HISTORY - Geology and ecology'],
        'VIEWPOINTS - Scenic spots',
        ['SAFETY TIPS - Preparation and gear'],
    ),
}


def mandatory_stops(guide_type: str, destination: str, num_stops: int) -> str:
    """
    Fixed stop outline for the known guide types, empty for anything else.

    The middle section covers every stop between the opening and closing
    ones. Guides too short for the full outline keep as many leading sections
    as fit, plus the final one.
    """
    if guide_type not in STOP_OUTLINES:
        return ''
    opening, middle, closing = STOP_OUTLINES[guide_type]
    num_stops = max(num_stops, 1)

    sections = opening + [middle] + closing
    middle_end = num_stops - len(closing)
    middle_start = len(opening) + 1
    if middle_end >= middle_start:
        numbers = [str(n) for n in range(1, middle_start)]
        numbers.append(f'{middle_start}-{middle_end}' if middle_end > middle_start else str(middle_start))
        numbers.extend(str(n) for n in range(middle_end + 1, num_stops + 1))
    else:
        sections = sections[:num_stops - 1] + [sections[-1]] if num_stops > 1 else sections[:1]
        numbers = [str(n) for n in range(1, num_stops + 1)]

    lines = [f'{number}. {section.format(destination=destination)}' for number, section in zip(numbers, sections)]
    return '\nMANDATORY STOPS:\n' + '\n'.join(lines)


def build_guide_prompt(
    destination: str,
    num_stops: int = DEFAULT_NUM_STOPS,
    guide_type: str = 'city',
    style: str = 'informative',
    audience: str = 'general',
    stop_length: int = DEFAULT_STOP_LENGTH,
    language: str = 'English',
    include_coordinates: bool = False,
    website_refs: Optional[List[str]] = None,
    custom_prompt: Optional[str] = None,
) -> str:
    """Build the audioguide generation prompt."""
    gps_hint = '[GPS: latitude, longitude]' if include_coordinates else ''

    lines = [
        f'Create a professional {num_stops}-stop audioguide for {destination}.',
        '',
        f'Guide Type: {guide_type}',
        f'Style: {style}',
        f'Audience: {audience}',
        f'Language: {language}',
        f'Words per stop: {stop_length}',
    ]
    if include_coordinates:
        lines.append('Include GPS coordinates [GPS: lat, long] for each stop')
    if website_refs:
        lines.append(f"Reference these websites: {', '.join(website_refs)}")
    if custom_prompt:
        lines.append(f'Special requirements: {custom_prompt}')

    outline = mandatory_stops(guide_type, destination, num_stops)
    if outline:
        lines.append(outline)

    lines.extend([
        '',
        'Format each stop as:',
        f'STOP [number]: [Descriptive Title] {gps_hint}'.rstrip(),
        '------------------------------',
        f'[Approximately {stop_length} words of engaging content]',
        '',
        f'Generate all {num_stops} stops now:',
    ])
    return '\n'.join(lines)


def build_translation_prompt(text: str, from_language: str, to_language: str) -> str:
    return f"""Translate the following audioguide text from {from_language} to {to_language}.

CRITICAL REQUIREMENTS:
- Maintain the exact same structure and formatting
- Keep all section headers (STOP 1:, STOP 2:, etc.) exactly as they are
- Preserve all line breaks, dashes, and spacing
- Translate content naturally while keeping the professional audioguide tone
- Keep proper nouns appropriate for the target language
- Do not add any explanations or notes, only provide the translated text

TEXT TO TRANSLATE:
{text}

TRANSLATED TEXT:"""


def guide_prompt_from_parameters(parameters: Mapping) -> str:
    """Use the caller's raw prompt if given, otherwise build one."""
    if parameters.get('prompt'):
        return parameters['prompt']
    return build_guide_prompt(
        destination=parameters['destination'],
        num_stops=parameters.get('numStops', DEFAULT_NUM_STOPS),
        guide_type=parameters.get('guideType') or 'city',
        style=parameters.get('style') or 'informative',
        audience=parameters.get('audience') or 'general',
        stop_length=parameters.get('stopLength', DEFAULT_STOP_LENGTH),
        language=parameters.get('language') or 'English',
        include_coordinates=bool(parameters.get('includeCoordinates')),
        website_refs=parameters.get('websiteRefs'),
        custom_prompt=parameters.get('customPrompt'),
    )
