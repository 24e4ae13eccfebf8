"""
hCaptcha resolution protocol.

Challenge presence is observed passively from outgoing browser requests. When a
contact action raises a challenge, its prompt and tiles are extracted, classified
by an external service and the flagged tiles clicked. Attempts are bounded.
"""
import base64
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .errors import CaptchaError, ScraperError
from .pacing import Pacer
from .transport import HttpClient

logger = logging.getLogger(__name__)

CHALLENGE_FRAME = 'iframe[title="Main content of the hCaptcha challenge"]'
PROMPT_SELECTOR = ".challenge-header .prompt-text span"
TILE_IMAGE_SELECTOR = ".task-grid .task .task-image .image"
TILE_SELECTOR = ".task-grid .task"
SUBMIT_SELECTOR = ".button-submit.button"
REFRESH_SELECTOR = ".refresh.button"

PROVIDER_MARKER = "hcaptcha"
SOLVED_MARKER = "popup"

STYLE_URL_RE = re.compile(r'url\("?(.*?)"?\)')


class CaptchaState(str, Enum):
    IDLE = "idle"
    DETECTED = "detected"
    CHALLENGED = "challenged"
    SOLVING = "solving"
    SOLVED = "solved"
    REFRESHED = "refreshed"
    ABANDONED = "abandoned"


@dataclass
class CaptchaStatus:
    """Per-listing observation of challenge traffic."""

    enabled: bool = False
    solved: bool = False

    def set_enabled(self):
        self.enabled = True

    def set_solved(self):
        self.solved = True

    def reset(self):
        self.enabled = False
        self.solved = False


@dataclass
class Challenge:
    question: Optional[str]
    images: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return bool(self.question) and bool(self.images)


class CaptchaClassifier:
    """Client for the HCaptchaClassification task of the solving service."""

    def __init__(self, http: HttpClient, api_key: str, api_url: str = "https://api.capsolver.com/createTask"):
        self.http = http
        self.api_key = api_key
        self.api_url = api_url

    async def classify(self, question: str, images: List[str], website_url: str) -> List[bool]:
        body = {
            "clientKey": self.api_key,
            "task": {
                "type": "HCaptchaClassification",
                "websiteURL": website_url,
                "question": question,
                "queries": images,
            },
        }
        try:
            response = await self.http.post(self.api_url, json_body=body)
        except ScraperError as e:
            raise CaptchaError(f"Classification request failed: {e}") from e

        data = response.data if isinstance(response.data, dict) else {}
        if data.get("errorId"):
            raise CaptchaError(
                f"Classification service error: {data.get('errorCode')} {data.get('errorDescription', '')}".strip()
            )
        objects = (data.get("solution") or {}).get("objects")
        if not isinstance(objects, list):
            raise CaptchaError("Classification service returned no solution")
        return [bool(o) for o in objects]


class CaptchaSolver:
    """State machine driving one browser page through challenges."""

    def __init__(
        self,
        browser,
        http: HttpClient,
        classifier: CaptchaClassifier,
        pacer: Pacer,
        max_attempts: int = 10,
        prompt_substitutions: Optional[Dict[str, str]] = None,
    ):
        self.browser = browser
        self.http = http
        self.classifier = classifier
        self.pacer = pacer
        self.max_attempts = max_attempts
        self.prompt_substitutions = dict(prompt_substitutions or {})
        self.status = CaptchaStatus()
        self.state = CaptchaState.IDLE
        self.attempts = 0
        self._watching = False

    def watch(self):
        """Subscribe to outgoing requests of the page."""
        if self._watching:
            return
        self.browser.on_request(self.observe)
        self._watching = True

    def observe(self, url: str):
        if SOLVED_MARKER in url:
            self.status.set_solved()
            self.state = CaptchaState.SOLVED
        elif PROVIDER_MARKER in url and not self.status.solved:
            self.status.set_enabled()
            if self.state == CaptchaState.IDLE:
                self.state = CaptchaState.DETECTED

    def begin_listing(self):
        """Fresh status for the next listing."""
        self.status.reset()
        self.state = CaptchaState.IDLE
        self.attempts = 0

    def normalize_prompt(self, prompt: Optional[str]) -> Optional[str]:
        if not prompt:
            return prompt
        for observed, intended in self.prompt_substitutions.items():
            if observed in prompt:
                logger.info(f"Replacing captcha prompt '{prompt}' with '{intended}'")
                return intended
        return prompt

    async def _fetch_tile(self, style: Optional[str]) -> Optional[str]:
        if not style:
            return None
        m = STYLE_URL_RE.search(style)
        if not m:
            return None
        raw = await self.http.get_bytes(m.group(1))
        return base64.b64encode(raw).decode("ascii")

    async def extract_challenge(self) -> Challenge:
        """Read the prompt and base64 tiles out of the challenge frame."""
        if not await self.browser.has_frame(CHALLENGE_FRAME):
            logger.info("Captcha frame not found")
            return Challenge(question=None)

        question = await self.browser.frame_text(CHALLENGE_FRAME, PROMPT_SELECTOR)
        styles = await self.browser.frame_attributes(CHALLENGE_FRAME, TILE_IMAGE_SELECTOR, "style")
        images = []
        for style in styles:
            encoded = await self._fetch_tile(style)
            if encoded:
                images.append(encoded)

        question = self.normalize_prompt(question.strip() if question else question)
        logger.info(f"Captcha question scraped: {question} ({len(images)} tiles)")
        return Challenge(question=question, images=images)

    async def refresh(self):
        """Request a new challenge; reload the page when the control is missing."""
        self.state = CaptchaState.REFRESHED
        try:
            await self.browser.frame_click(CHALLENGE_FRAME, REFRESH_SELECTOR)
        except ScraperError as e:
            logger.error(f"Captcha refresh failed, reloading page: {e}")
            await self.browser.reload()

    async def apply_solution(self, solution: List[bool]):
        for index, flagged in enumerate(solution):
            if flagged:
                await self.browser.frame_click(CHALLENGE_FRAME, TILE_SELECTOR, index=index)
                await self.pacer.pause(0.2, 0.4)
        await self.browser.frame_click(CHALLENGE_FRAME, SUBMIT_SELECTOR)
        await self.pacer.pause(0.8, 1.2)

    @property
    def pending(self) -> bool:
        return self.status.enabled and not self.status.solved

    async def solve(self, website_url: str, trigger_selector: str) -> bool:
        """
        Click ``trigger_selector`` and work through any challenge it raises.

        Returns True when no challenge remains, False when attempts ran out.
        """
        await self.pacer.pause(0.7, 1.2)
        await self.browser.click(trigger_selector)
        await self.pacer.pause(2.0, 3.0)
        logger.info(f"Captcha status: enabled={self.status.enabled} solved={self.status.solved}")

        while self.pending:
            if self.attempts >= self.max_attempts:
                self.state = CaptchaState.ABANDONED
                logger.warning(f"Captcha abandoned after {self.attempts} attempts on {website_url}")
                return False
            self.attempts += 1
            self.state = CaptchaState.CHALLENGED
            await self.pacer.pause(3.0, 4.0)

            try:
                challenge = await self.extract_challenge()
            except ScraperError as e:
                logger.error(f"Captcha extraction failed on {website_url}: {e}")
                await self.refresh()
                continue
            if not challenge.complete:
                logger.error(f"Captcha question or images not found on {website_url}")
                await self.refresh()
                continue

            self.state = CaptchaState.SOLVING
            try:
                solution = await self.classifier.classify(challenge.question, challenge.images, website_url)
            except CaptchaError as e:
                logger.error(f"Captcha is not solved: {e}")
                await self.refresh()
                continue

            try:
                await self.apply_solution(solution)
            except ScraperError as e:
                logger.error(f"Applying captcha solution failed: {e}")
                await self.refresh()
                continue

        if self.status.solved:
            self.state = CaptchaState.SOLVED
        return True
