import os
import time
import requests
from datetime import datetime
from flask import Blueprint, jsonify, request, current_app, url_for
from flask_login import current_user, login_required
from sqlalchemy import or_
from werkzeug.utils import secure_filename

from . import db, ai, scraper, MEAL_TYPES
from .decorators import household_required
from .errors import MealPrepError
from .models import Recipe, MealEntry, RecipeImport
from .recipe_store import apply_recipe_fields, replace_ingredients, replace_steps
from .utils import escape_like

recipes = Blueprint('recipes', __name__)

SOURCE_TYPES = ('manual', 'url_import', 'ocr', 'ai_generated')
IMAGE_TYPES = ('image/jpeg', 'image/png', 'image/webp', 'image/gif')
MAX_IMAGE_BYTES = 10 * 1024 * 1024
UNSPLASH_SEARCH_URL = 'https://api.unsplash.com/search/photos'


def _get_recipe_or_404(recipe_id):
    return Recipe.query.filter_by(id=recipe_id, household_id=current_user.household_id).first_or_404(
        description='Recipe not found')


@recipes.route('', methods=['GET'])
@login_required
@household_required
def list_recipes():
    page = max(request.args.get('page', 1, type=int), 1)
    limit = min(max(request.args.get('limit', 20, type=int), 1), 100)
    search = (request.args.get('search') or '').strip()
    meal_type = request.args.get('mealType')
    favorite = request.args.get('favorite')

    query = Recipe.query.filter_by(household_id=current_user.household_id)
    if search:
        pattern = f"%{escape_like(search)}%"
        query = query.filter(or_(Recipe.title.ilike(pattern, escape='\\'),
                                 Recipe.description.ilike(pattern, escape='\\')))
    if meal_type in MEAL_TYPES:
        # meal_types is a JSON list; match the quoted value in its text form
        query = query.filter(db.cast(Recipe.meal_types, db.String).like(f'%"{meal_type}"%'))
    if favorite == 'true':
        query = query.filter(Recipe.is_favorite.is_(True))

    pagination = query.order_by(Recipe.created_at.desc(), Recipe.id.desc()).paginate(
        page=page, per_page=limit, error_out=False)

    return jsonify({
        'recipes': [r.to_dict() for r in pagination.items],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': pagination.total,
            'totalPages': pagination.pages,
        }
    })


@recipes.route('', methods=['POST'])
@login_required
@household_required
def create_recipe():
    data = request.get_json(silent=True) or {}
    source_type = data.get('sourceType') if data.get('sourceType') in SOURCE_TYPES else 'manual'

    recipe = Recipe(
        household_id=current_user.household_id,
        created_by=current_user.id,
        source_type=source_type,
        source_url=data.get('sourceUrl'),
        meal_types=[],
        tags=[]
    )
    try:
        apply_recipe_fields(recipe, data)
        db.session.add(recipe)
        db.session.flush()
        replace_ingredients(recipe, data.get('ingredients'))
        replace_steps(recipe, data.get('steps'))
        db.session.commit()
    except MealPrepError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating recipe for household {current_user.household_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to save recipe ingredients/steps'}), 500

    return jsonify({'recipe': recipe.to_dict()}), 201


@recipes.route('/<int:recipe_id>', methods=['GET'])
@login_required
@household_required
def get_recipe(recipe_id):
    return jsonify({'recipe': _get_recipe_or_404(recipe_id).to_dict()})


@recipes.route('/<int:recipe_id>', methods=['PUT'])
@login_required
@household_required
def update_recipe(recipe_id):
    recipe = _get_recipe_or_404(recipe_id)
    data = request.get_json(silent=True) or {}

    try:
        apply_recipe_fields(recipe, data)
        if data.get('ingredients') is not None:
            replace_ingredients(recipe, data['ingredients'])
        if data.get('steps') is not None:
            replace_steps(recipe, data['steps'])
        db.session.commit()
    except MealPrepError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating recipe {recipe_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to update recipe ingredients/steps'}), 500

    return jsonify({'recipe': recipe.to_dict()})


@recipes.route('/<int:recipe_id>', methods=['PATCH'])
@login_required
@household_required
def patch_recipe(recipe_id):
    recipe = _get_recipe_or_404(recipe_id)
    data = request.get_json(silent=True) or {}

    if 'is_favorite' in data:
        recipe.is_favorite = bool(data['is_favorite'])
    if 'meal_type' in data:
        recipe.meal_types = [m for m in (data['meal_type'] or []) if m in MEAL_TYPES]
    if 'tags' in data:
        recipe.tags = list(data['tags'] or [])
    if data.get('mark_cooked'):
        recipe.times_cooked = (recipe.times_cooked or 0) + 1
        recipe.last_cooked_at = datetime.utcnow()

    db.session.commit()
    return jsonify({'recipe': recipe.to_dict(relations=False)})


@recipes.route('/<int:recipe_id>', methods=['DELETE'])
@login_required
@household_required
def delete_recipe(recipe_id):
    recipe = _get_recipe_or_404(recipe_id)
    try:
        # Planned meals keep their slot as a custom meal
        for entry in MealEntry.query.filter_by(recipe_id=recipe.id).all():
            entry.recipe = None
            entry.custom_meal_name = entry.custom_meal_name or recipe.title
        db.session.delete(recipe)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error deleting recipe {recipe_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to delete recipe'}), 500
    return jsonify({'success': True})


def _log_import(import_type, parsed_recipe, source_url=None, image_url=None, default_confidence=0.9):
    confidence = parsed_recipe.get('confidence')
    db.session.add(RecipeImport(
        household_id=current_user.household_id,
        imported_by=current_user.id,
        import_type=import_type,
        source_url=source_url,
        image_url=image_url,
        raw_ai_response=parsed_recipe,
        status='completed',
        confidence_score=confidence if isinstance(confidence, (int, float)) else default_confidence
    ))
    db.session.commit()


@recipes.route('/import/url', methods=['POST'])
@login_required
@household_required
def import_from_url():
    data = request.get_json(silent=True) or {}
    url = (data.get('url') or '').strip()
    if not url:
        return jsonify({'error': 'URL is required'}), 400

    content = scraper.fetch_recipe_page(url)

    try:
        parsed_recipe = ai.extract_recipe_from_text(content)
    except Exception as e:
        current_app.logger.error(f"URL import failed for {url}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to import recipe'}), 500

    parsed_recipe['sourceUrl'] = url
    parsed_recipe['sourceType'] = 'url_import'
    _log_import('url', parsed_recipe, source_url=url)
    current_app.logger.info(f"Imported recipe draft from {url} for household {current_user.household_id}")
    return jsonify({'recipe': parsed_recipe})


def _store_upload(file_storage, image_bytes, folder):
    """Saves an uploaded image below UPLOAD_FOLDER and returns its public URL, or None on failure."""
    filename = f"{int(time.time() * 1000)}-{secure_filename(file_storage.filename or '') or 'image'}"
    relative_path = f"{folder}/{current_user.household_id}/{filename}"
    target = os.path.join(current_app.config['UPLOAD_FOLDER'], folder, str(current_user.household_id))
    try:
        os.makedirs(target, exist_ok=True)
        with open(os.path.join(target, filename), 'wb') as f:
            f.write(image_bytes)
    except OSError as e:
        current_app.logger.warning(f"Could not store uploaded image {relative_path}: {e}")
        return None
    return url_for('uploaded_file', filename=relative_path)


@recipes.route('/import/ocr', methods=['POST'])
@login_required
@household_required
def import_from_image():
    image = request.files.get('image')
    if not image:
        return jsonify({'error': 'No image provided'}), 400
    if image.mimetype not in IMAGE_TYPES:
        return jsonify({'error': 'Invalid image type. Use JPG, PNG, WebP, or GIF.'}), 400

    image_bytes = image.read()
    if len(image_bytes) > MAX_IMAGE_BYTES:
        return jsonify({'error': 'Image too large. Maximum size is 10MB.'}), 400

    image_url = _store_upload(image, image_bytes, 'ocr')

    try:
        parsed_recipe = ai.extract_recipe_from_image(image_bytes, image.mimetype)
    except Exception as e:
        current_app.logger.error(f"OCR import failed for household {current_user.household_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to process image'}), 500

    parsed_recipe['sourceType'] = 'ocr'
    if image_url:
        parsed_recipe['imageUrl'] = image_url
    _log_import('ocr', parsed_recipe, image_url=image_url, default_confidence=0.8)
    return jsonify({'recipe': parsed_recipe})


def _search_unsplash(query, access_key):
    response = requests.get(
        UNSPLASH_SEARCH_URL,
        params={'query': query, 'per_page': 1, 'orientation': 'squarish', 'content_filter': 'high'},
        headers={'Authorization': f'Client-ID {access_key}'},
        timeout=10
    )
    response.raise_for_status()
    results = response.json().get('results') or []
    return results[0].get('urls', {}).get('regular') if results else None


@recipes.route('/generate-image', methods=['POST'])
@login_required
@household_required
def generate_image():
    data = request.get_json(silent=True) or {}
    title = (data.get('title') or '').strip()
    if not title:
        return jsonify({'error': 'Recipe title is required'}), 400

    access_key = current_app.config.get('UNSPLASH_ACCESS_KEY')
    if not access_key:
        return jsonify({'error': 'Unsplash API key not configured'}), 500

    try:
        image_url = (_search_unsplash(f"{title} food dish meal", access_key)
                     or _search_unsplash('delicious food plated', access_key))
    except requests.exceptions.RequestException as e:
        current_app.logger.error(f"Unsplash search failed for '{title}': {e}")
        return jsonify({'error': 'Failed to search for images'}), 500

    if not image_url:
        return jsonify({'error': 'No images found'}), 404

    if data.get('recipeId'):
        recipe = _get_recipe_or_404(data['recipeId'])
        recipe.image_url = image_url
        db.session.commit()

    return jsonify({'imageUrl': image_url})
