"""
Browser page driver.
Wraps a SeleniumBase undetected-Chrome session behind the small surface the
walker needs: where am I, what is rendered, go somewhere, scroll, click.
"""

import json
import logging
import os
import re
import sys
import time
from typing import List, Optional, Tuple

from seleniumbase import Driver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from .errors import ContentTimeoutError, NavigationError

logger = logging.getLogger(__name__)


class BrowserPage:
    """Single-tab browser session driven through SeleniumBase UC mode."""

    def __init__(self, headless: bool = False, start_url: Optional[str] = None):
        """
        Args:
            headless: Run Chrome without a window (may not pass bot checks)
            start_url: Page opened right after the browser starts
        """
        self.headless = headless
        self.start_url = start_url
        self.driver = None

    def _init_driver(self):
        """Initialize SeleniumBase Driver with UC mode and CDP network logging."""
        if self.driver is not None:
            return
        logger.info("Initializing browser...")

        if sys.platform.startswith('linux'):
            # Snap-packaged Chrome cannot be driven reliably
            os.environ['SNAP_NAME'] = ''
            os.environ['SNAP'] = ''
            os.environ['SNAP_INSTANCE_NAME'] = ''

        self.driver = Driver(
            uc=True,
            headless=self.headless,
            log_cdp_events=True
        )
        if self.start_url:
            self.driver.get(self.start_url)
            time.sleep(3)

    def _ensure_driver(self):
        """Ensure driver is alive, recreate if needed."""
        if self.driver is None:
            self._init_driver()
            return
        try:
            self.driver.current_url
        except (ConnectionRefusedError, OSError, AttributeError, WebDriverException) as e:
            logger.warning("Browser connection lost (%s), restarting...", type(e).__name__)
            self._close_driver()
            self._init_driver()

    def _close_driver(self):
        """Close WebDriver."""
        if self.driver:
            try:
                self.driver.quit()
            except (WebDriverException, OSError) as e:
                logger.debug("Error while closing browser: %s", e)
            self.driver = None

    @property
    def current_url(self) -> str:
        self._ensure_driver()
        return self.driver.current_url

    @property
    def page_source(self) -> str:
        self._ensure_driver()
        return self.driver.page_source

    def visible_text(self) -> str:
        """Rendered text of the document body."""
        self._ensure_driver()
        try:
            return self.driver.find_element(By.TAG_NAME, 'body').text
        except WebDriverException:
            return ''

    def navigate(self, url: str):
        """
        Load a URL. Ends the current incarnation's view of the page.

        Raises:
            NavigationError: if the browser could not load the page
        """
        self._ensure_driver()
        try:
            self.driver.get(url)
        except WebDriverException as e:
            raise NavigationError(f"Failed to navigate to {url}: {e.msg}") from e

    def go_back(self):
        """History back."""
        self._ensure_driver()
        try:
            self.driver.back()
        except WebDriverException as e:
            raise NavigationError(f"History back failed: {e.msg}") from e

    def scroll_by(self, pixels: int):
        self._ensure_driver()
        self.driver.execute_script("window.scrollBy(0, arguments[0]);", pixels)

    def click(self, selector: str) -> bool:
        """
        Click the first element matching a CSS selector.

        Returns:
            True if an element was found and clicked
        """
        self._ensure_driver()
        try:
            element = self.driver.find_element(By.CSS_SELECTOR, selector)
            self.driver.execute_script("arguments[0].scrollIntoView({block: 'center'});", element)
            element.click()
            return True
        except WebDriverException as e:
            logger.debug("Click on %r failed: %s", selector, e)
            return False

    def click_by_text(self, selector: str, pattern: str) -> bool:
        """
        Click the first element matching selector whose text matches a regex.

        Returns:
            True if an element was clicked
        """
        self._ensure_driver()
        regex = re.compile(pattern, re.IGNORECASE)
        try:
            for element in self.driver.find_elements(By.CSS_SELECTOR, selector):
                if element.is_displayed() and regex.search(element.text or ''):
                    element.click()
                    return True
        except WebDriverException as e:
            logger.debug("Text click on %r failed: %s", selector, e)
        return False

    def wait_for(self, selector: str, timeout: float = 10.0) -> bool:
        """
        Wait for an element to be present.

        Raises:
            ContentTimeoutError: if nothing matched within timeout
        """
        self._ensure_driver()
        try:
            WebDriverWait(self.driver, timeout).until(
                EC.presence_of_element_located((By.CSS_SELECTOR, selector))
            )
            return True
        except TimeoutException as e:
            raise ContentTimeoutError(f"Timeout waiting for content: {selector}") from e

    def network_events(self) -> List[Tuple[Optional[int], Optional[str]]]:
        """
        Drain completed document/XHR responses from the CDP performance log.

        Returns:
            List of (status, url) tuples since the last call
        """
        self._ensure_driver()
        exchanges = []
        for entry in self.driver.get_log('performance'):
            try:
                message = json.loads(entry['message'])['message']
            except (KeyError, TypeError, ValueError):
                continue
            if message.get('method') != 'Network.responseReceived':
                continue
            response = message.get('params', {}).get('response', {})
            exchanges.append((response.get('status'), response.get('url')))
        return exchanges

    def is_alive(self) -> bool:
        if self.driver is None:
            return False
        try:
            _ = self.driver.current_url
            return True
        except (WebDriverException, OSError) as e:
            logger.warning("Browser not responsive: %s", e)
            return False

    def restart(self):
        self._close_driver()
        time.sleep(2)
        self._init_driver()

    def close(self):
        """Clean up resources."""
        self._close_driver()
