from typing import Optional

from .filename_time import CaptureTime

PROMPT_VERSION = "1.1.0"


def scene_analysis_instruction(filename: str, timezone: str, capture: Optional[CaptureTime]) -> str:
    lines = [
        "Analyze this street camera image and provide a structured JSON assessment. "
        f'The image filename is "{filename}" which encodes the capture time as '
        f"YYYY-MM-DD-HH-MM.jpg (timezone: {timezone}). "
        "Use this to determine the timestamp, day of week, and time of day."
    ]
    if capture is not None:
        lines.append(
            f"Decoded capture time: {capture.iso} ({capture.day_of_week}, {timezone}). "
            "Report this as the timestamp and day of week."
        )
    else:
        lines.append(
            "The filename does not follow the capture naming convention, so the capture "
            "time could not be decoded. Estimate the timestamp from visual cues only."
        )
    lines.append(
        "Carefully observe and estimate all fields. For counts (vehicles, pedestrians, etc.), "
        "count only what you can actually see. For percentages and scores, give your best "
        "estimate. Be precise and honest - if you can't see something clearly, use your best "
        "judgment based on available visual cues."
    )
    return "\n\n".join(lines)
