from __future__ import annotations

from .core.types import CustomField

SUMMARY_PROMPT = "Please provide a brief summary of this transcript:"
TAGS_PROMPT = "Based on this transcript, provide a comma-separated list of relevant tags (maximum 5 tags):"
NEEDS_SCREENSHOTS_PROMPT = (
    "If the transcript consists solely of mentions of music or the transcript does not include "
    "the name and URL of a product then respond with 'True', otherwise respond with 'False'"
)
TRANSCRIPTION_PROMPT = (
    "Transcribe the speech in this audio verbatim. Return only the transcript text with no "
    "timestamps, speaker labels, or commentary. If there is no speech, return an empty response."
)
VISION_PROMPT = (
    "Extract all text from the image including captions, Product Names and any URLs. If there are "
    "no captions, products or URLs, just return N/A. Do not include any other text."
)
SCREENSHOT_SUMMARY_PROMPT = (
    "Based on all the extracted text from the video screenshots create a concise summary of the content."
)

DEFAULT_TRANSCRIPT_FIELDS: tuple[CustomField, ...] = (
    CustomField(
        name="Products",
        prompt=(
            "Create a comma delimited list of products/solutions mentioned in the transcript, for each "
            "product/solution add a colon and then a concise sentence on why it was recommended."
        ),
    ),
)

DEFAULT_SCREENSHOT_FIELDS: tuple[CustomField, ...] = (
    CustomField(
        name="Screenshot Products",
        prompt=(
            "For each product add a colon and then a concise sentence on why it was recommended including "
            "the URL. If there is no URL, just add the product name. If this is no product, just add NA. "
            "Do not include any other text."
        ),
    ),
)


def transcript_prompt(instruction: str, transcript: str) -> str:
    return f"{instruction}\n\n{transcript}"


def screenshot_summary_prompt(instruction: str, extracted_text: str) -> str:
    return f"{instruction}\n\nExtracted Text from Screenshots:\n{extracted_text}"


def custom_field_prompt(instruction: str, text: str) -> str:
    return f"{instruction}\n\nExtracted Text: {text}"
