"""
Centralized prompts and response schemas for the prediction service.
"""

import json
from typing import Any, Dict, List

# --- RECEIPT EXTRACTION ---

RECEIPT_PROMPT = """
You are an OCR and data extraction system for a shopping agent.
Analyze the provided image of a receipt. Identify and extract all shopping items, their purchased quantity, their individual cost, and the store name/vendor.
The output must be a JSON array of objects, strictly adhering to the provided schema.
Combine item lines if necessary, and use a reasonable approximation if exact quantity/cost is unclear.
"""

RECEIPT_SYSTEM_PROMPT = "Extract structured data from the receipt image. Output only the requested JSON structure."

RECEIPT_SCHEMA = {
    "type": "ARRAY",
    "description": "A list of extracted items from the receipt.",
    "items": {
        "type": "OBJECT",
        "properties": {
            "name": {"type": "STRING", "description": "The name of the purchased item (e.g., 'Milk')."},
            "quantity": {"type": "NUMBER", "description": "The purchased quantity (e.g., 2)."},
            "cost": {
                "type": "NUMBER",
                "description": "The individual item cost (e.g., 4.99). If line item total is provided, divide by quantity."
            },
            "vendor": {"type": "STRING", "description": "The store or vendor name (e.g., 'Walmart')."}
        },
        "required": ["name", "quantity", "cost", "vendor"]
    }
}

# --- FORECAST AND CART ---

FORECAST_PROMPT = """
You are the predictive core logic engine of an autonomous home shopping agent.
Analyze the provided Current Inventory and Recent Purchase History.

Task 1: Generate a behavioral run-out forecast (YYYY-MM-DD) for *every* item in the inventory, based on the historical purchase frequency.
Task 2: Predict and suggest up to {max_suggestions} items that should be purchased soon (low stock or due for refill).

Current Inventory: {inventory}
Recent Purchase History (last {history_count} entries): {history}
"""

FORECAST_SYSTEM_PROMPT = (
    "Analyze history for consumption patterns. Output ONLY a concise JSON object that strictly "
    "adheres to the provided schema, containing both the suggested cart and the inventory forecasts."
)


def build_receipt_payload(base64_image: str, mime_type: str) -> Dict[str, Any]:
    """generateContent payload for receipt line-item extraction."""
    return {
        "contents": [{
            "role": "user",
            "parts": [
                {"text": RECEIPT_PROMPT},
                {"inlineData": {"mimeType": mime_type, "data": base64_image}}
            ]
        }],
        "systemInstruction": {"parts": [{"text": RECEIPT_SYSTEM_PROMPT}]},
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": RECEIPT_SCHEMA
        }
    }


def build_forecast_schema(vendors: List[str], max_suggestions: int) -> Dict[str, Any]:
    """Response schema for the forecast request; vendors become an enum."""
    vendor_enum = list(dict.fromkeys([*vendors, "Unknown"]))
    return {
        "type": "OBJECT",
        "properties": {
            "suggestedCart": {
                "type": "ARRAY",
                "description": f"List of 0-{max_suggestions} items recommended for immediate purchase.",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "name": {"type": "STRING", "description": "The name of the item."},
                        "quantityToBuy": {
                            "type": "NUMBER",
                            "description": "The suggested quantity to add to the cart (e.g., 2)."
                        },
                        "reason": {
                            "type": "STRING",
                            "description": "A brief reason for the suggestion (e.g., 'Low stock', 'Bi-weekly refill needed')."
                        },
                        "vendor": {"type": "STRING", "enum": vendor_enum, "description": "The suggested vendor."}
                    },
                    "required": ["name", "quantityToBuy", "reason"]
                }
            },
            "inventoryForecasts": {
                "type": "ARRAY",
                "description": "List of all inventory items with an AI-predicted run-out date.",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "name": {"type": "STRING", "description": "The name of the item matching inventory."},
                        "predictedRunOutDate": {
                            "type": "STRING",
                            "description": "The predicted date (YYYY-MM-DD) the item will run out, based on purchase history analysis."
                        }
                    },
                    "required": ["name", "predictedRunOutDate"]
                }
            }
        },
        "required": ["suggestedCart", "inventoryForecasts"]
    }


def build_forecast_payload(
    inventory_summary: List[Dict[str, Any]],
    history_summary: List[Dict[str, Any]],
    vendors: List[str],
    max_suggestions: int = 5,
) -> Dict[str, Any]:
    """generateContent payload for run-out forecasts and cart suggestions."""
    prompt = FORECAST_PROMPT.format(
        max_suggestions=max_suggestions,
        inventory=json.dumps(inventory_summary),
        history_count=len(history_summary),
        history=json.dumps(history_summary),
    )
    return {
        "contents": [{"parts": [{"text": prompt}]}],
        "systemInstruction": {"parts": [{"text": FORECAST_SYSTEM_PROMPT}]},
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": build_forecast_schema(vendors, max_suggestions)
        }
    }
