"""
Check that GEMINI_API_KEY works before starting the server.

    cd backend && python -m scripts.check_gemini_key

Sends one tiny prompt with the configured model and prints the reply, or
the reason the call failed. Exit status 0 on success, 1 otherwise.
"""

import asyncio
import logging
import sys

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from medcheck.config import settings

logger = logging.getLogger("medcheck.scripts.check_gemini_key")

TEST_PROMPT = 'Say "Hello, API is working!" if you can read this.'


async def check() -> bool:
    if not settings.gemini_configured:
        logger.error("GEMINI_API_KEY is not set (or still the placeholder). Add it to backend/.env")
        return False

    logger.info("API key found: %s...", settings.gemini_api_key[:10])
    logger.info("Testing model %s", settings.gemini_model)

    genai.configure(api_key=settings.gemini_api_key)
    model = genai.GenerativeModel(settings.gemini_model)
    try:
        response = await model.generate_content_async(
            TEST_PROMPT,
            generation_config={"temperature": 0.7, "max_output_tokens": 50},
            request_options={"timeout": settings.gemini_timeout},
        )
    except (google_exceptions.PermissionDenied, google_exceptions.Unauthenticated) as e:
        logger.error("The key was rejected: %s", e)
        logger.error("Create a new key at https://aistudio.google.com/app/apikey")
        return False
    except google_exceptions.NotFound as e:
        logger.error("Model %s is not available for this key: %s", settings.gemini_model, e)
        return False
    except google_exceptions.GoogleAPIError as e:
        logger.error("Gemini call failed: %s", e)
        return False

    logger.info("Success. Gemini replied: %s", response.text.strip())
    return True


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    return 0 if asyncio.run(check()) else 1


if __name__ == "__main__":
    sys.exit(main())
