RECIPE_OCR_PROMPT = """You are extracting a recipe from an image. The image may be:
- A photo of a cookbook page
- A handwritten recipe card
- A screenshot of a recipe
- A printed recipe

Extract all recipe information and structure it properly. Be thorough and accurate.

Respond with valid JSON in this exact format (no markdown, just JSON):
{
  "title": "Recipe name",
  "description": "Brief description if visible",
  "prepTime": number (minutes) or null,
  "cookTime": number (minutes) or null,
  "servings": number or null,
  "ingredients": [
    {
      "name": "ingredient name (e.g. 'chicken breast', 'olive oil')",
      "quantity": number or null,
      "unit": "unit (e.g. 'cups', 'tbsp', 'lbs')" or null,
      "preparation": "diced, minced, etc." or null,
      "notes": "any notes" or null,
      "originalText": "exact text from image"
    }
  ],
  "steps": [{"instruction": "Step instruction text", "duration": number (minutes) or null}],
  "cuisine": "cuisine type if identifiable" or null,
  "mealType": ["breakfast", "lunch", "dinner", or "snack"],
  "tags": ["relevant", "tags"],
  "confidence": 0.0-1.0,
  "notes": "Any issues or unclear parts"
}

Important guidelines:
- Preserve the original ingredient text in "originalText"
- Parse quantities carefully (convert fractions like 1/2, 3/4 to decimals)
- If text is partially illegible, make reasonable inferences and note lower confidence
- Return ONLY the JSON object, no other text"""

URL_EXTRACT_PROMPT = """You are extracting recipe information from webpage content scraped from a recipe website.
Many recipe sites include structured data (JSON-LD); use it when present, and the page text otherwise.

Respond with valid JSON (no markdown, just JSON):
{
  "title": "Recipe name",
  "description": "Description",
  "prepTime": number (minutes) or null,
  "cookTime": number (minutes) or null,
  "servings": number or null,
  "ingredients": [
    {
      "name": "ingredient name",
      "quantity": number or null,
      "unit": "unit" or null,
      "preparation": "prep method" or null,
      "originalText": "original ingredient line"
    }
  ],
  "steps": [{"instruction": "instruction text", "duration": number or null}],
  "cuisine": "cuisine" or null,
  "mealType": ["breakfast", "lunch", "dinner", or "snack"],
  "tags": ["tags"],
  "author": "recipe author if available" or null,
  "notes": "any tips or notes from the original",
  "confidence": 0.0-1.0
}

Be careful to:
- Distinguish between ingredient notes and actual ingredients
- Parse quantity fractions correctly (convert 1/2 to 0.5, etc.)
- Return ONLY the JSON object, no other text"""

FRIDGE_SCAN_PROMPT = """Analyze this image of a refrigerator, freezer, or pantry. Identify EVERY visible food item.

For each item provide:
- name: Specific common name (e.g. "red bell pepper" not "pepper", "whole milk" not "milk")
- quantity: A number (e.g. 1, 2, 0.5) or null if unclear. MUST be a number or null, never a string.
- unit: The unit as a string (e.g. "items", "lb", "oz", "bunch", "bottle", "carton", "pack") or null
- confidence: A number from 0.0 to 1.0

Include partially visible items with a lower confidence score rather than missing them.

You MUST respond with ONLY a valid JSON object, no markdown and no text before or after:
{"items":[{"name":"string","quantity":1,"unit":"items","confidence":0.9}],"notes":"string"}"""


def recipe_suggestion_prompt(inventory, user_recipes):
    """Builds the suggestion prompt from inventory rows and up to 20 household recipes."""
    inventory_lines = []
    for item in inventory:
        amount = f" ({item.quantity:g} {item.unit or ''}".rstrip() + ")" if item.quantity else ""
        inventory_lines.append(f"- {item.name}{amount} [{item.location}]")

    recipe_lines = [f"- {r.title} ({', '.join(r.meal_types or [])})" for r in user_recipes[:20]]

    return f"""You are a helpful meal planning assistant. Based on the user's available ingredients, suggest recipes they can make.

AVAILABLE INGREDIENTS:
{chr(10).join(inventory_lines)}

USER'S EXISTING RECIPES (for context on their preferences):
{chr(10).join(recipe_lines) or '- none yet'}

Suggest 5 recipes that:
1. Primarily use ingredients they already have
2. Are practical for home cooking
3. Vary in meal type (breakfast, lunch, dinner)
4. Match their apparent cooking style/preferences

Respond with valid JSON (no markdown, just JSON):
{{
  "suggestions": [
    {{
      "title": "Recipe name",
      "description": "Brief appetizing description",
      "usesIngredients": ["ingredient1", "ingredient2"],
      "additionalNeeded": ["ingredient1"],
      "mealType": "breakfast" | "lunch" | "dinner" | "snack",
      "prepTime": number,
      "cookTime": number,
      "difficulty": "easy" | "medium" | "hard",
      "matchScore": 0.0-1.0
    }}
  ]
}}
Return ONLY the JSON object, no other text"""
