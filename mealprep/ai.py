import json
import re
import google.generativeai as genai
from flask import current_app

from .errors import DependencyFailure
from .prompts import RECIPE_OCR_PROMPT, URL_EXTRACT_PROMPT, FRIDGE_SCAN_PROMPT

_CODE_FENCE = re.compile(r'```(?:json)?\s*\n?', re.IGNORECASE)
_JSON_OBJECT = re.compile(r'\{[\s\S]*\}')


class AIResponseError(DependencyFailure):
    pass


def configure_ai(app):
    if not app.config.get('GOOGLE_API_KEY'):
        app.logger.warning("GOOGLE_API_KEY is not set; AI import, scan and suggestions will fail.")
        return
    try:
        genai.configure(api_key=app.config['GOOGLE_API_KEY'])
    except Exception as e:
        app.logger.error(f"Error configuring Google AI: {e}")


def generate(parts, json_mode=True):
    """Sends prompt parts (text and/or image blobs) to the model and returns its raw text."""
    model = genai.GenerativeModel(current_app.config['GEMINI_MODEL'])
    generation_config = genai.types.GenerationConfig(response_mime_type="application/json") if json_mode else None
    response = model.generate_content(
        parts,
        generation_config=generation_config,
        request_options={"timeout": current_app.config['AI_TIMEOUT']}
    )
    return response.text


def parse_ai_json(text):
    """Best-effort decode of a model reply that should hold one JSON object.

    Tries the text as-is, then with markdown code fences removed, then the
    outermost {...} block. Raises AIResponseError when nothing decodes to an object.
    """
    text = (text or '').strip()
    candidates = [text, _CODE_FENCE.sub('', text).strip()]
    match = _JSON_OBJECT.search(text)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except (ValueError, TypeError):
            continue
        if isinstance(data, dict):
            return data

    current_app.logger.error(f"Failed to parse AI response: {text[:500]}")
    raise AIResponseError('Failed to parse AI response as JSON')


def _image_part(image_bytes, media_type):
    return {'mime_type': media_type, 'data': image_bytes}


def extract_recipe_from_text(content, prompt=URL_EXTRACT_PROMPT):
    return parse_ai_json(generate([prompt, f"Content to extract from:\n{content}"]))


def extract_recipe_from_image(image_bytes, media_type, prompt=RECIPE_OCR_PROMPT):
    return parse_ai_json(generate([_image_part(image_bytes, media_type), prompt]))


def scan_inventory_image(image_bytes, media_type):
    result = parse_ai_json(generate([_image_part(image_bytes, media_type), FRIDGE_SCAN_PROMPT]))
    if not isinstance(result.get('items'), list):
        result['items'] = []
    return result


def suggest_recipes(prompt):
    result = parse_ai_json(generate(prompt))
    if not isinstance(result.get('suggestions'), list):
        result['suggestions'] = []
    return result
