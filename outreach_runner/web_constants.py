"""Shared constants for driving the platform's web pages.

Locators are data: each entry is an ordered strategy list tried left to right.
Any entry can be replaced from settings via ``locator_overrides``.
"""

from outreach_runner.locators import LocatorSpec, LocatorStrategy as S

PROFILE_PATH_MARKER = "/in/"
FEED_PATH = "/feed/"

# A profile card counts only if it holds at least one action button.
_ACTION_BUTTONS = (
    'button[aria-label*="Message"], button[aria-label*="Connect"], '
    'button[aria-label*="Follow"], button[aria-label*="More"]'
)

DEFAULT_LOCATORS: dict[str, LocatorSpec] = {
    "profile_actions": LocatorSpec(
        "profile action buttons",
        (
            S("top_card_ctas", f".pv-top-card-v2-ctas:has({_ACTION_BUTTONS})"),
            S("profile_actions", f".pvs-profile-actions:has({_ACTION_BUTTONS})"),
            S("profile_actions_class", f'[class*="profile-actions"]:has({_ACTION_BUTTONS})'),
            S(
                "section_message_more",
                'section:has(button[aria-label*="Message"]):has(button[aria-label*="More"])',
            ),
            S(
                "pv_top_message_more",
                'div[class*="pv-top"]:has(button[aria-label*="Message"]):has(button[aria-label*="More"])',
            ),
        ),
    ),
    "pending_button": LocatorSpec(
        "pending invitation indicator",
        (S("pending", 'button[aria-label*="Pending"]'),),
    ),
    "message_button": LocatorSpec(
        "Message button",
        (S("message", 'button[aria-label*="Message"]', visible_only=True),),
    ),
    "following_button": LocatorSpec(
        "Following indicator",
        (S("following", 'button[aria-label*="Following"]'),),
    ),
    "follow_button": LocatorSpec(
        "Follow button",
        (
            S(
                "follow",
                'button[aria-label*="Follow"]:not([aria-label*="Following"]):not([aria-label*="Unfollow"])',
            ),
        ),
    ),
    "connect_button": LocatorSpec(
        "Connect button",
        (
            S("connect_primary", 'button[aria-label*="Invite"][aria-label*="connect"].artdeco-button--primary'),
            S("connect_any", 'button[aria-label*="Invite"][aria-label*="connect"]'),
        ),
    ),
    "more_button": LocatorSpec(
        "More button",
        (
            S("more_actions", 'button[aria-label="More actions"]'),
            S("more_actions_partial", 'button[aria-label*="More actions"]'),
            S("more_text", "button", text="More"),
        ),
    ),
    "dropdown_connect": LocatorSpec(
        "Connect option in More menu",
        (
            S(
                "dropdown_connect",
                '.artdeco-dropdown__content div[aria-label*="Invite"][aria-label*="connect"][role="button"]',
                page_wide=True,
            ),
        ),
    ),
    "dropdown_follow": LocatorSpec(
        "Follow option in More menu",
        (
            S("dropdown_item", 'div.artdeco-dropdown__item[aria-label^="Follow "][role="button"]', page_wide=True),
            S(
                "dropdown_content",
                '.artdeco-dropdown__content div[aria-label^="Follow "][role="button"]',
                page_wide=True,
            ),
            S("dropdown_text", 'div.artdeco-dropdown__item[role="button"]', text="Follow", page_wide=True),
        ),
    ),
    "invite_add_note": LocatorSpec(
        "Add a note button",
        (S("add_note", 'button[aria-label="Add a note"]', page_wide=True),),
    ),
    "invite_send_without_note": LocatorSpec(
        "Send without a note button",
        (S("send_without_note", 'button[aria-label="Send without a note"]', page_wide=True),),
    ),
    "invite_note_field": LocatorSpec(
        "invitation note field",
        (S("note_textarea", 'textarea[name="message"]', page_wide=True),),
    ),
    "invite_send": LocatorSpec(
        "Send invitation button",
        (S("send_invitation", 'button[aria-label="Send invitation"]:not([disabled])', page_wide=True),),
    ),
    "modal_dismiss": LocatorSpec(
        "Dismiss button",
        (S("dismiss", 'button[aria-label="Dismiss"]', page_wide=True),),
    ),
    "open_conversation_close": LocatorSpec(
        "open conversation close button",
        (
            S("close_conversation", 'button[aria-label="Close your conversation"]', page_wide=True),
            S(
                "overlay_close",
                '.msg-overlay-bubble-header__control[data-control-name="overlay.close_conversation_window"]',
                page_wide=True,
            ),
        ),
    ),
    "message_textbox": LocatorSpec(
        "message compose area",
        (
            S(
                "contenteditable",
                '.msg-form__contenteditable[contenteditable="true"][role="textbox"]',
                page_wide=True,
            ),
        ),
    ),
    "message_send": LocatorSpec(
        "message Send button",
        (
            S("send_button", "button.msg-form__send-button:not([disabled])", page_wide=True),
            S("form_submit", 'form.msg-form button[type="submit"]:not([disabled])', page_wide=True),
        ),
    ),
    "message_close": LocatorSpec(
        "message box close button",
        (
            S(
                "close_icon",
                'button.msg-overlay-bubble-header__control:has(svg[data-test-icon="close-small"])',
                page_wide=True,
            ),
            S("header_control", "button.msg-overlay-bubble-header__control", page_wide=True),
        ),
    ),
    "contact_info_opener": LocatorSpec(
        "Contact Info link",
        (S("contact_info", 'a[href*="overlay/contact-info"]', page_wide=True),),
    ),
    "contact_info_modal": LocatorSpec(
        "Contact Info overlay",
        (
            S("modal_content", ".artdeco-modal__content", page_wide=True),
            S("modal", ".artdeco-modal", page_wide=True),
            S("test_modal", "[data-test-modal]", page_wide=True),
            S("dialog", 'div[role="dialog"]', page_wide=True),
        ),
    ),
    "contact_info_email": LocatorSpec(
        "email link",
        (
            S("ci_email", 'section.ci-email a[href^="mailto:"]'),
            S("email_section", 'section[class*="email"] a[href^="mailto:"]'),
            S("any_mailto", 'a[href^="mailto:"]'),
        ),
    ),
    "self_profile_link": LocatorSpec(
        "own profile link",
        (
            S("card_picture", '.profile-card a.profile-card-profile-picture-container[href*="/in/"]', page_wide=True),
            S("card_link", '.profile-card a.profile-card-profile-link[href*="/in/"]', page_wide=True),
            S("card_any", '.profile-card a[href*="/in/"]', page_wide=True),
            S("identity_actor", '.feed-identity-module__actor-meta a[href*="/in/"]', page_wide=True),
            S("identity_module", '.feed-identity-module a[href*="/in/"]', page_wide=True),
        ),
    ),
    "me_menu": LocatorSpec(
        "Me menu",
        (
            S("me_trigger", ".global-nav__me-trigger", page_wide=True),
            S("me_button", ".global-nav__me button", page_wide=True),
            S("me", ".global-nav__me", page_wide=True),
        ),
    ),
    "me_menu_profile_link": LocatorSpec(
        "profile link in Me menu",
        (
            S("me_content", '.global-nav__me-content a[href*="/in/"]', page_wide=True),
            S("dropdown_inner", '.artdeco-dropdown__content-inner a[href*="/in/"]', page_wide=True),
            S("dropdown", '.artdeco-dropdown__content a[href*="/in/"]', page_wide=True),
        ),
    ),
}
