"""Selenium adapter for the Nimbus Note web UI.

All waiting for the page to settle happens here; the traversal only sees
ItemScraper calls that either return a value or raise ScrapeReadError.
The XPaths below match the Nimbus Note web app as of late 2023.
"""

import logging
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.common.action_chains import ActionChains
from selenium.webdriver.common.by import By
from selenium.webdriver.common.keys import Keys
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.remote.webelement import WebElement
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from nimbus_tags.exceptions import ScrapeReadError, SettleTimeoutError
from nimbus_tags.models.schema import (
    ItemDetail,
    ItemSummary,
    parse_legacy_creation_date,
    split_folder_path,
)

logger = logging.getLogger(__name__)

# Sign-in page
POPUP_AD_CLOSE = "//div[@class='cb-close']"
SIGN_IN_LINK = "Sign in"
LOGIN_INPUT = "//input[@name='login']"
PASSWORD_INPUT = "//input[@name='password']"
SIGN_IN_BUTTON = "//button/span[text()='Sign in with email']"
NOTE_BODY = "//note-text-version-2/div/div[1]/div[2]/div[4]"

# Notes list
NOTES_PANEL = "//notes-list-view"
NOTE_CARDS = "//notes-list-view//div[@class='notes-list-item--wrapper']"
ACTIVE_CARD = "//div[@class='notes-list-item-wrapper active']"
NOTES_SCROLLER = "//div[@class='ReactVirtualized__Grid ReactVirtualized__List']"
CARD_TITLE = "./notes-list-item/div/div/div/div[@class='notes-list-item--title']/span"
CARD_MODIFIED = "./notes-list-item/div/div/div/div[@class='notes-list-item--content']/p/span[1]"
CARD_LEGACY = "./notes-list-item/div/div/div/div[@class='notes-list-item--content']/p/span[2]"

# "Page info" popup
MORE_ICON = "//svg-icon[@icon='more']"
PAGE_INFO_LINK = "Page info"
POPUP_CLOSE = "//div[@class='nimbus-popup-close']"
POPUP_BREADCRUMBS_ROW = "//note-info-popup/div/div/div/div[@class='row breadcrumbs']"
POPUP_BREADCRUMBS = "//div[@class='breadcrumbs__items ng-scope']"
POPUP_MODIFIED = "//note-info-popup/div/div/div/div[3]/label"
POPUP_CREATED = "//note-info-popup/div/div/div/div[4]/label"

# Tags popup
TAGS_ICON = "//svg-icon[@tooltip-message='Change tags']"
SELECTED_TAGS = "//div[@class='selected-tags']/div/span"


def create_driver(use_firefox: bool = True) -> WebDriver:
    """Start a Firefox or Chrome session."""
    if use_firefox:
        logger.debug("Using the Firefox browser.")
        return webdriver.Firefox()
    logger.debug("Using the Chrome browser.")
    return webdriver.Chrome()


class NimbusScraper:
    """ItemScraper over the notes list of a signed-in Nimbus Note page."""

    def __init__(
        self,
        driver: WebDriver,
        settle_timeout: float = 30.0,
        page_settle: float = 1.0,
        poll_interval: float = 0.5,
    ):
        """Wrap a WebDriver session.

        Args:
            driver: The Selenium session. The scraper does not quit it.
            settle_timeout: Seconds to wait for an element to become usable.
            page_settle: Extra seconds given to JavaScript after a page or
                popup reports itself ready.
            poll_interval: Seconds between two checks of a pending wait.
        """
        self.driver = driver
        self.settle_timeout = settle_timeout
        self.page_settle = page_settle
        self.poll_interval = poll_interval

    # Waiting

    def _wait(self) -> WebDriverWait:
        return WebDriverWait(self.driver, self.settle_timeout, poll_frequency=self.poll_interval)

    def wait_for(self, xpath: str, view: Optional[str] = None) -> Optional[WebElement]:
        """Wait until the element is visible and enabled.

        Returns None if it never settles; the time-out is logged, not raised.
        """
        try:
            return self._wait().until(EC.element_to_be_clickable((By.XPATH, xpath)))
        except TimeoutException:
            logger.error(str(SettleTimeoutError(xpath, self.settle_timeout, view=view)))
            return None

    def require(self, xpath: str, view: str) -> WebElement:
        """Like wait_for, but a time-out fails the current read."""
        element = self.wait_for(xpath, view=view)
        if element is None:
            raise SettleTimeoutError(xpath, self.settle_timeout, view=view)
        return element

    def wait_for_page_to_load(self) -> bool:
        """Wait for document.readyState to reach 'complete'."""
        try:
            self._wait().until(
                lambda d: d.execute_script("return document.readyState") == "complete"
            )
        except TimeoutException:
            logger.error("waitForPageToLoad() failed to 'complete'.")
            return False
        time.sleep(self.page_settle)
        return True

    @contextmanager
    def _reading(self, view: str, title: Optional[str] = None) -> Iterator[None]:
        """Turn WebDriver failures into ScrapeReadError for one view."""
        try:
            yield
        except WebDriverException as e:
            raise ScrapeReadError(
                f"Cannot read the {view} view", view=view, title=title, original_error=e
            ) from e

    def _click_hovered(self, element: WebElement) -> None:
        """Move the mouse over an element that may be out of view, then click."""
        ActionChains(self.driver).move_to_element(element).perform()
        element.click()

    def _dismiss(self, xpath: str) -> None:
        """Click whatever closes the open popup, if it is there.

        Runs after failed reads too, so a popup left open cannot block the
        next note. A failure here is logged and does not mask the read error.
        """
        try:
            elements = self.driver.find_elements(By.XPATH, xpath)
            if elements:
                elements[0].click()
        except WebDriverException as e:
            logger.warning(f"Could not close the popup with {xpath}: {e}")

    # Session

    def open(self, url: str, credentials: Tuple[str, str]) -> None:
        """Load Nimbus Note and sign in; returns once a note body is shown."""
        login, password = credentials
        with self._reading("sign-in"):
            self.driver.get(url)
            self.wait_for_page_to_load()

            # A popup ad is pushed now and then
            popups = self.driver.find_elements(By.XPATH, POPUP_AD_CLOSE)
            if popups:
                popups[0].click()
                self.wait_for_page_to_load()

            self.driver.find_element(By.PARTIAL_LINK_TEXT, SIGN_IN_LINK).click()
            self.wait_for_page_to_load()

            field = self.driver.find_element(By.XPATH, LOGIN_INPUT)
            field.clear()
            field.send_keys(login)
            field = self.driver.find_element(By.XPATH, PASSWORD_INPUT)
            field.clear()
            field.send_keys(password)
            self.driver.find_element(By.XPATH, SIGN_IN_BUTTON).click()
            self.wait_for_page_to_load()

        self.require(NOTE_BODY, view="sign-in")

    def close(self) -> None:
        """Shut the browser down."""
        self.driver.quit()

    # ItemScraper

    def select_first(self) -> None:
        with self._reading("notes list"):
            self.driver.find_element(By.XPATH, NOTES_PANEL).click()
            cards = self.driver.find_elements(By.XPATH, NOTE_CARDS)
            if not cards:
                raise ScrapeReadError("The notes list is empty", view="notes list")
            cards[0].click()

    def _active_card(self) -> WebElement:
        return self.driver.find_element(By.XPATH, ACTIVE_CARD)

    def current_summary(self) -> ItemSummary:
        with self._reading("title card"):
            card = self._active_card()
            title = card.find_element(By.XPATH, CARD_TITLE).text
            modified = card.find_element(By.XPATH, CARD_MODIFIED).text
            legacy = ""
            extra = card.find_elements(By.XPATH, CARD_LEGACY)
            if extra:
                legacy = parse_legacy_creation_date(extra[0].text)
        return ItemSummary(title=title, modified_date=modified, legacy_creation_date=legacy)

    def current_detail(self) -> ItemDetail:
        view = "page info"
        with self._reading(view):
            self._click_hovered(self.driver.find_element(By.XPATH, MORE_ICON))
            self.driver.find_element(By.LINK_TEXT, PAGE_INFO_LINK).click()
            try:
                self.require(POPUP_CLOSE, view=view)
                self.require(POPUP_BREADCRUMBS_ROW, view=view)
                time.sleep(self.page_settle)

                # Breadcrumbs like 'HWDreamer /  Alton Brown'
                breadcrumbs = self.driver.find_element(By.XPATH, POPUP_BREADCRUMBS).text
                parent_path, folder_name = split_folder_path(breadcrumbs)
                modified = self.driver.find_element(By.XPATH, POPUP_MODIFIED).text
                created = self.driver.find_element(By.XPATH, POPUP_CREATED).text
            finally:
                self._dismiss(POPUP_CLOSE)

        return ItemDetail(
            folder_name=folder_name,
            parent_path=parent_path,
            modified_date=modified,
            creation_date=created,
        )

    def current_tags(self) -> List[str]:
        with self._reading("tags"):
            # No icon means no tags are assigned
            icons = self.driver.find_elements(By.XPATH, TAGS_ICON)
            if not icons:
                return []
            self._click_hovered(icons[0])
            try:
                tags = [el.text for el in self.driver.find_elements(By.XPATH, SELECTED_TAGS)]
            finally:
                # Close the popup by clicking elsewhere, i.e. the title card
                self._dismiss(ACTIVE_CARD)
        return tags

    def advance(self) -> None:
        with self._reading("notes list"):
            self.driver.find_element(By.XPATH, NOTES_SCROLLER).send_keys(Keys.ARROW_DOWN)
