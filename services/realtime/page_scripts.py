"""DOM selectors and in-page scripts used to read the upstream agent page."""

from __future__ import annotations

VIDEO_CARD_SELECTOR = (
	"div.tw-flex.tw-flex-col.tw-items-stretch.tw-rounded-2xl.tw-border.tw-border-line"
	".tw-bg-fill-general.tw-cursor-pointer:not(.tw-hidden)"
)
CHAT_READY_SELECTOR = ".tw-bg-fill-block, div.tw-flex.tw-justify-start"
PROMPT_INPUT_SELECTOR = "textarea.tw-resize-none"
SUBMIT_BUTTON_SELECTOR = "button[data-loading=\"false\"].tw-bg-brand:not([disabled])"
FILE_INPUT_SELECTORS = (
	"input[type=\"file\"][accept*=\"image\"]",
	"input[type=\"file\"][accept*=\"jpg\"]",
	"input[type=\"file\"][accept*=\"png\"]",
	"input[type=\"file\"]",
)
CLOSE_BUTTON_SELECTOR = "button[aria-label=\"Close\"]"


def transcript_rows_script() -> str:
	"""Return a script listing chat rows and video cards in DOM order.

	Each row is either `{type: "message", role, text, images}` or
	`{type: "video_placeholder", thumbnail, title}`.
	"""
	return """
() => {
  const rows = Array.from(document.querySelectorAll(
    'div.tw-flex.tw-justify-end, div.tw-flex.tw-justify-start, ' +
    'div.tw-flex.tw-flex-col.tw-items-stretch.tw-rounded-2xl.tw-border.tw-border-line.tw-bg-fill-general.tw-cursor-pointer'
  )).filter(el => !el.classList.contains('tw-hidden'));
  const limitPatterns = [/reached/i, /unlimited mode/i, /generative credits/i];
  const out = [];
  for (const row of rows) {
    const isCard = row.classList.contains('tw-flex-col') && row.classList.contains('tw-rounded-2xl');
    if (isCard) {
      const img = row.querySelector('img[alt="draft thumbnail"]');
      const titleEl = row.querySelector('.tw-text-base.tw-font-bold.tw-tracking-tight');
      out.push({
        type: 'video_placeholder',
        thumbnail: img ? img.src : null,
        title: titleEl ? titleEl.innerText.trim() : 'Your video is ready!'
      });
      continue;
    }
    if (row.classList.contains('tw-justify-end')) {
      const bubble = row.querySelector('.tw-bg-fill-block');
      const text = bubble ? bubble.innerText.trim() : '';
      const images = Array.from(row.querySelectorAll('img'))
        .filter(img => img.src && img.alt !== 'draft thumbnail')
        .map(img => ({ url: img.src, alt: img.alt || 'User attached image' }));
      if (text || images.length) out.push({ type: 'message', role: 'user', text, images });
      continue;
    }
    const selectors = ['div.tw-prose', 'div.tw-text-textTitle div.tw-prose', 'div > div.tw-bg-fill-block'];
    let text = '';
    for (const sel of selectors) {
      const el = row.querySelector(sel);
      if (el && !el.closest('div.tw-border-l-2.tw-border-line')) {
        text = (el.innerText || el.textContent || '').trim();
        if (text) break;
      }
    }
    if (!text || limitPatterns.some(p => p.test(text))) continue;
    out.push({ type: 'message', role: 'agent', text, images: [] });
  }
  return out;
}
"""


def upstream_error_script() -> str:
	"""Return a script reading the upstream error banner, or null."""
	return """
() => {
  const el = document.querySelector('.tw-bg-more-redLighter .tw-text-textTitle');
  const text = el ? (el.innerText || el.textContent || '').trim() : '';
  return text || null;
}
"""


def rendered_videos_script() -> str:
	"""Return a script listing resolvable `<video>` sources for a given host."""
	return """
(host) => {
  let nodes = document.querySelectorAll('video.css-uwwqev');
  if (nodes.length === 0) nodes = document.querySelectorAll('video');
  const titleEl = document.querySelector('.tw-text-base.tw-font-bold.tw-tracking-tight') ||
                  document.querySelector('h2, h3');
  const title = ((titleEl && (titleEl.innerText || titleEl.textContent)) || '').trim() || 'Your video is ready!';
  const found = [];
  for (const video of nodes) {
    const source = video.querySelector('source');
    const src = video.src || (source && (source.src || source.getAttribute('src'))) || '';
    if (src && src.includes(host) && !src.includes('liteSharePreviewAnimation')) {
      found.push({ videoUrl: src, poster: video.poster || '', title });
    }
  }
  return found;
}
"""


def generation_progress_script() -> str:
	"""Return a script reading the upstream generation progress card."""
	return """
() => {
  const percentageText = [...document.querySelectorAll('span.tw-font-semibold.tw-text-textTitleRev')]
    .map(el => el.innerText).find(text => text.includes('%'));
  const percentage = percentageText ? parseInt(percentageText.replace('%', ''), 10) : 0;
  const card = document.querySelector(
    'div.tw-flex.tw-flex-col.tw-items-stretch.tw-gap-4.tw-rounded-2xl.tw-border.tw-border-line' +
    '.tw-bg-fill-general.tw-p-4.tw-relative.tw-cursor-pointer.tw-group'
  );
  if (!card && !percentageText) return { isGenerating: false };
  if (!card) {
    return { isGenerating: true, percentage, currentStatus: 'Processing', currentStep: '',
             message: 'Our Video Agent is working on your video', steps: [] };
  }
  let currentStatus = 'Processing';
  card.querySelectorAll('.tw-flex.tw-flex-col.tw-gap-2 > div.tw-text-sm').forEach(el => {
    if (el.classList.contains('tw-font-bold') && el.classList.contains('tw-text-textTitle')) {
      currentStatus = el.textContent.trim();
    }
  });
  const stepEl = card.querySelector(
    'iconpark-icon[name="onboarding-ongoing"][theme="filled"] + span.tw-text-sm.tw-text-textTitle.tw-font-bold'
  );
  const steps = Array.from(card.querySelectorAll('.tw-flex.tw-items-center.tw-gap-3')).map(el => {
    const icon = el.querySelector('iconpark-icon');
    const text = el.querySelector('span.tw-text-sm.tw-text-textTitle');
    let status = 'pending';
    if (icon && icon.getAttribute('name') === 'check-one-fill') status = 'completed';
    else if (icon && icon.getAttribute('name') === 'onboarding-ongoing') status = 'current';
    return { text: text ? text.textContent.trim() : '', status };
  });
  const messageEl = card.querySelector('.tw-text-sm.tw-font-medium.tw-text-textBody span');
  return {
    isGenerating: true,
    percentage,
    currentStatus,
    currentStep: stepEl ? stepEl.textContent.trim() : '',
    message: messageEl ? messageEl.textContent.trim() : 'Our Video Agent is working on your video',
    steps
  };
}
"""


def card_preview_script() -> str:
	"""Return a script reading a video card's thumbnail, title and subtitle."""
	return """
(card) => {
  const img = card.querySelector('img[alt="draft thumbnail"]');
  const titleEl = card.querySelector('.tw-text-base.tw-font-bold.tw-tracking-tight');
  const subtitleEl = card.querySelector('.tw-text-sm.tw-font-medium.tw-text-textBody span');
  return {
    thumbnail: img ? img.src : null,
    title: titleEl ? titleEl.innerText.trim() : 'Your video is ready!',
    subtitle: subtitleEl ? subtitleEl.innerText.trim() : ''
  };
}
"""


def dispatch_click_script() -> str:
	"""Return a script clicking an element through a synthetic DOM event."""
	return """
(el) => el.dispatchEvent(new MouseEvent('click', { view: window, bubbles: true, cancelable: true }))
"""
