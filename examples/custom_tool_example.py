# gigachat_toolkit/examples/custom_tool_example.py
import asyncio
import json
import logging
from typing import Any, Dict

from gigachat_toolkit import ChatOptions, GigaChatClient
from gigachat_toolkit.tools.base_tool import BaseTool
from gigachat_toolkit.tools.models import ToolExecutionResult

module_logger = logging.getLogger(__name__)


class ExchangeRateTool(BaseTool):
    """
    A self-contained class representing the 'get_exchange_rate' tool.

    It holds the metadata (name, description, parameters) and the execution logic.
    """

    # --- Tool Metadata ---
    NAME: str = "get_exchange_rate"
    DESCRIPTION: str = "Returns the exchange rate of a currency against the rouble."
    PARAMETERS: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "currency": {
                "type": "string",
                "description": "ISO 4217 code of the currency, e.g. 'USD' or 'CNY'.",
            }
        },
        "required": ["currency"],
    }

    # --- Tool Configuration / State (Example) ---
    MOCK_RATES: Dict[str, float] = {"USD": 92.5, "EUR": 99.1, "CNY": 12.7}

    def __init__(self, source: str = "mock"):
        self._source = source
        module_logger.info(f"ExchangeRateTool instance created with source: '{self._source}'")

    def execute(self, currency: str) -> ToolExecutionResult:
        """
        Args:
            currency: The code passed by the model based on the PARAMETERS schema.
        """
        code = currency.upper()
        rate = self.MOCK_RATES.get(code)
        if rate is None:
            result: Dict[str, Any] = {"error": "Unknown currency", "currency": code}
        else:
            result = {"currency": code, "rate_rub": rate, "source": self._source}

        module_logger.info(f"[ExchangeRateTool] Returning: {result}")
        return ToolExecutionResult(content=json.dumps(result), payload=result)


async def main() -> None:
    # Credentials come from GIGACHAT_CLIENT_ID / GIGACHAT_CLIENT_SECRET (or .env).
    async with GigaChatClient() as client:
        client.tool_factory.register_tool_class(ExchangeRateTool, config={"source": "example"})

        result = await client.chat(
            [{"role": "user", "content": "Сколько рублей стоит один доллар?"}],
            ChatOptions(functions={ExchangeRateTool.NAME}),
        )
        print(result.text)
        print(f"Usage: {result.usage}")
        print(f"Payloads: {result.payloads}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
