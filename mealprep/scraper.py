import json
import requests
from bs4 import BeautifulSoup
from flask import current_app

from .errors import BadRequest

HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
}

NOISE_SELECTORS = ['script', 'style', 'nav', 'header', 'footer', 'aside',
                   '[class*="advertisement"]', '[class*="social"]', '[class*="comment"]']

# Tried in order; the first group with a match wins
CONTENT_SELECTORS = [
    ['[itemtype*="Recipe"]'],
    ['.recipe', '.recipe-content', '#recipe', 'article'],
    ['main', '.content', '.post-content'],
]

MAX_CONTENT_CHARS = 12000


def _find_recipe_node(data):
    if isinstance(data, list):
        for entry in data:
            found = _find_recipe_node(entry)
            if found:
                return found
        return None
    if not isinstance(data, dict):
        return None

    node_type = data.get('@type')
    if node_type == 'Recipe' or (isinstance(node_type, list) and 'Recipe' in node_type):
        return data
    if '@graph' in data:
        return _find_recipe_node(data['@graph'])
    return None


def extract_json_ld(soup):
    """Returns the first schema.org Recipe object embedded as JSON-LD, if any."""
    for script in soup.find_all('script', type='application/ld+json'):
        try:
            data = json.loads(script.string or '')
        except ValueError:
            continue
        recipe = _find_recipe_node(data)
        if recipe:
            return recipe
    return None


def _meta_content(soup, **attrs):
    tag = soup.find('meta', attrs=attrs)
    return tag.get('content', '').strip() if tag else ''


def extract_title(soup):
    title = _meta_content(soup, property='og:title')
    if not title and soup.h1:
        title = soup.h1.get_text(strip=True)
    if not title and soup.title:
        title = soup.title.get_text(strip=True)
    return title


def extract_description(soup):
    return _meta_content(soup, name='description') or _meta_content(soup, property='og:description')


def extract_main_text(soup):
    for selector in NOISE_SELECTORS:
        for node in soup.select(selector):
            node.decompose()

    main_content = None
    for group in CONTENT_SELECTORS:
        main_content = next((soup.select_one(s) for s in group if soup.select_one(s)), None)
        if main_content:
            break
    main_content = main_content or soup.body or soup

    page_text = ' '.join(main_content.get_text(separator=' ', strip=True).split())
    return page_text[:MAX_CONTENT_CHARS]


def fetch_recipe_page(url):
    """Downloads a recipe page and reduces it to the text block sent for extraction."""
    try:
        response = requests.get(url, headers=HEADERS, timeout=15)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        current_app.logger.warning(f"Failed to fetch recipe URL {url}: {e}")
        raise BadRequest(f'Failed to fetch URL: {e}')

    soup = BeautifulSoup(response.content, 'html.parser')
    json_ld = extract_json_ld(soup)
    title = extract_title(soup)
    description = extract_description(soup)
    main_text = extract_main_text(soup)

    parts = [f"URL: {url}", f"Title: {title}"]
    if description:
        parts.append(f"Description: {description}")
    if json_ld:
        parts.append(f"Structured Recipe Data (JSON-LD):\n{json.dumps(json_ld, indent=2)}")
    parts.append(f"Page Content:\n{main_text}")
    return '\n\n'.join(parts)
