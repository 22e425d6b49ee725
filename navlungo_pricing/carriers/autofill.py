"""
Browser-Use Autofill for the Navlungo Price Calculator

LLM-driven form filling using the browser-use library. The calculator's
markup changes often and has no stable selectors, so instead of scripting
clicks we describe the shipment and let the agent find the fields.

The agent attaches to the scraper's own Chromium over CDP, so the quote
responses it triggers are captured by the scraper's response listener.
"""

from typing import Any, Callable, Optional

from browser_use import Agent, Browser, ChatAnthropic

from navlungo_pricing.models import PriceRequest


async def fill_price_calculator(
    request: PriceRequest,
    cdp_url: str,
    calculator_url: str,
    model: str = "claude-sonnet-4-0",
    on_progress: Optional[Callable[[str], Any]] = None,
) -> dict:
    """
    Fill and submit the price calculator for a shipment.

    Args:
        request: Shipment to price
        cdp_url: DevTools endpoint of the already-running browser
        calculator_url: Price calculator page
        model: Anthropic model driving the agent
        on_progress: Optional async callback for progress updates

    Returns:
        dict with success status and any messages
    """
    llm = ChatAnthropic(model=model, temperature=0.0)

    # Attach to the scraper's browser rather than launching a second one
    browser = Browser(cdp_url=cdp_url)

    task_prompt = build_calculator_prompt(request, calculator_url)

    if on_progress:
        await on_progress("Starting price calculator autofill...")

    try:
        agent = Agent(
            task=task_prompt,
            llm=llm,
            browser=browser,
        )

        result = await agent.run()

        if on_progress:
            await on_progress("Price calculator submitted - waiting for quotes")

        return {
            "success": True,
            "message": "Price calculator filled and submitted.",
            "result": str(result),
        }

    except Exception as e:
        error_msg = f"Calculator autofill error: {str(e)}"
        print(f"[Autofill] ERROR: {error_msg}")

        if on_progress:
            await on_progress(f"Error: {error_msg}")

        return {
            "success": False,
            "error": error_msg,
        }


def build_calculator_prompt(request: PriceRequest, calculator_url: str) -> str:
    """
    Build the task prompt for the browser-use agent.

    The prompt tells the LLM:
    1. Which shipment to price
    2. Where the form is
    3. When to STOP (quotes listed)
    """
    length, width, height = request.dimensions

    origin = ", ".join(
        part for part in (request.origin_city, request.origin_postal_code, request.origin_country) if part
    )
    destination = ", ".join(
        part
        for part in (request.destination_city, request.destination_postal_code, request.destination_country)
        if part
    )

    declared = ""
    if request.declared_value is not None:
        declared = f"- Declared Value: {request.declared_value} {request.currency or 'USD'}\n"

    prompt = f"""
You are filling out the Navlungo shipping price calculator.

Go to: {calculator_url}
The user is already logged in. If you see a login page, STOP and report "Login required".

SHIPMENT TO PRICE:
- Origin: {origin}
- Destination: {destination}
- Weight: {request.weight} kg
- Dimensions: {length} x {width} x {height} cm
- Billable Weight: {request.billable_weight:.2f} kg
- Package Count: {request.package_count or 1}
{declared}
INSTRUCTIONS:
1. Select the origin country and, if asked, city / postal code
2. Select the destination country and, if asked, city / postal code
3. Enter the weight and the package dimensions
4. Click the calculate / search button ("Hesapla", "Fiyat Al" or similar)
5. Wait until the list of carrier prices is shown

CRITICAL - STOP CONDITION:
When the carrier price list is displayed:
- DO NOT click "Create Shipment", "Book", "Buy", "Pay", or "Order"
- DO NOT select any offer
- STOP and report that prices are displayed

Report when done: "Prices displayed - ready for capture"
"""
    return prompt
