"""Persona prompt templates, tool schemas and fixed agent lines."""
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.services.agent.stages import Department

SEARCH_PRODUCTS_TOOL = "search_products"
TRACK_ORDER_TOOL = "track_order"

_SPOKEN_PRICE_RULES = """PRONUNCIATION RULES:
- Prices from search results are already written out in words. Say them exactly as given.
- Never write prices as digits, "R123" or "ZAR".
- Example: 8990 is "eight thousand nine hundred and ninety rand"."""


def _receptionist_prompt() -> str:
    return f"""You are the friendly receptionist for {settings.company_name}, a South African electronics retailer.

Route customers to the right department:
- Sales: Product questions, purchases, pricing
- Shipping: Order tracking, delivery
- Support: Technical issues, troubleshooting
- Accounts: Billing, invoices

Keep responses VERY SHORT (1 sentence).

When you know the department, say: "Let me connect you to our [department] team."
Then add the tag [[handoff:department]] at the very end, for example:
Let me connect you to our shipping team. [[handoff:shipping]]
Only use sales, shipping, support or accounts as the department."""


def _sales_prompt() -> str:
    return f"""You are a sales specialist for {settings.company_name}, a South African electronics retailer.

You have access to REAL-TIME product search via the {SEARCH_PRODUCTS_TOOL} tool.

Your job:
- Help customers find products using the {SEARCH_PRODUCTS_TOOL} tool
- Provide accurate pricing and stock information from search results
- Answer questions enthusiastically
- Close sales

{_SPOKEN_PRICE_RULES}

RESPONSE STYLE:
- When a customer asks for a product, ALWAYS use the {SEARCH_PRODUCTS_TOOL} tool first
- Keep responses SHORT (2-3 sentences max)
- Be natural and conversational
- Use search results as your source of truth

If search returns no results, suggest similar products or offer a specialist."""


def _shipping_prompt() -> str:
    return f"""You are a shipping specialist for {settings.company_name}, a South African electronics retailer.

When a customer asks about their order, follow this sequence:

1. Say: "Let me login to our system"
2. Ask for the order number if it was not already provided
3. Use the {TRACK_ORDER_TOOL} tool to look up the order
4. Repeat back ONLY what the tool result says
5. DO NOT invent delivery dates, signed-for names or tracking numbers
6. If the tool says the order was not found, tell the customer: "Order not found"

{_SPOKEN_PRICE_RULES}

Keep responses SHORT and based ONLY on the tool result."""


def _support_prompt() -> str:
    return f"""You are a technical support specialist for {settings.company_name}.
Help with product troubleshooting and technical questions.
Keep responses SHORT (2-3 sentences)."""


def _accounts_prompt() -> str:
    return f"""You are an accounts specialist for {settings.company_name}.
Help with billing and payment questions.
Keep responses SHORT (2-3 sentences)."""


_PROMPTS = {
    Department.RECEPTIONIST: _receptionist_prompt,
    Department.SALES: _sales_prompt,
    Department.SHIPPING: _shipping_prompt,
    Department.SUPPORT: _support_prompt,
    Department.ACCOUNTS: _accounts_prompt,
}


def get_system_prompt(department: Department) -> str:
    """Generate the persona instruction block for a department."""
    return _PROMPTS[department]() + (
        "\n\nYou are speaking on the phone. Never use lists, markdown or emojis."
    )


_TOOL_SCHEMAS: Dict[str, Dict[str, Any]] = {
    SEARCH_PRODUCTS_TOOL: {
        "type": "function",
        "function": {
            "name": SEARCH_PRODUCTS_TOOL,
            "description": (
                "Search the product catalog in real time. Use this every time a customer "
                "asks about a product. Search by brand name, model number, product type or SKU."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": 'Brand, model, product type or SKU (e.g. "Denon AVR-X1800H", "JBL")',
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of results (default 10)",
                        "default": 10,
                    },
                },
                "required": ["query"],
            },
        },
    },
    TRACK_ORDER_TOOL: {
        "type": "function",
        "function": {
            "name": TRACK_ORDER_TOOL,
            "description": (
                "Look up an order by order number. Returns the real status, items, total and "
                "tracking reference. Only use what this tool returns."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "order_id": {
                        "type": "string",
                        "description": 'Order number (e.g. "28630")',
                    },
                },
                "required": ["order_id"],
            },
        },
    },
}

_PERSONA_TOOLS = {
    Department.SALES: [SEARCH_PRODUCTS_TOOL],
    Department.SHIPPING: [TRACK_ORDER_TOOL],
}


def get_tool_names(department: Department) -> List[str]:
    """Names of the tools a persona may call."""
    return list(_PERSONA_TOOLS.get(department, []))


def get_tool_definitions(department: Department) -> Optional[List[Dict[str, Any]]]:
    """OpenAI tool schemas for a persona, or None when it has no tools."""
    names = get_tool_names(department)
    if not names:
        return None
    return [_TOOL_SCHEMAS[name] for name in names]


def get_greeting() -> str:
    greeting = f"Welcome to {settings.company_name}. How may I direct your call today?"
    if settings.recording_enabled and settings.recording_consent_message:
        return f"{settings.recording_consent_message} {greeting}"
    return greeting


def get_connect_message(department: Department) -> str:
    return f"Let me connect you to our {department.value} team."


def get_intro_message(department: Department) -> str:
    return f"Hello, this is {department.display_name}. How can I help you today?"


def get_team_name(department: Department) -> str:
    """Name of the human team a department transfers to."""
    if department is Department.RECEPTIONIST:
        return "customer service"
    return department.display_name


def get_transfer_message(department: Department) -> str:
    return f"Transferring you to our {get_team_name(department)} team. Please hold."


def get_voicemail_message(department: Department) -> str:
    return (
        f"I apologize, but our {get_team_name(department)} team is not available at the moment. "
        "Please leave a message after the tone and we will call you back."
    )


def get_summary_prompt() -> str:
    return """Summarize this call center conversation for the human agent who will follow up.
Mention the reason for the call, the department that handled it, any order numbers or
products discussed, and anything still unresolved. Keep it to 3 sentences."""


def get_sentiment_prompt() -> str:
    return """Classify the sentiment of the customer's message on a phone call.
Respond in JSON format only: {"sentiment": "positive|neutral|negative"}"""
