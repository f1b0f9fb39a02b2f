"""JavaScript executed inside the captured page.

Each script is an arrow function evaluated with a single argument and
returns a plain ``{success, data, error}`` object mirroring
``PageResponse``. Steps are individually guarded so that one failing
selector or resource never aborts the rest of the script.
"""

from __future__ import annotations

STYLE_ELEMENT_ID = "pdfbuddy-print-styles"

# Prepare the page for capture.  Argument: {hideSelectors, settleTimeoutMs}.
PREPARE_PAGE_JS = """
async ({hideSelectors, settleTimeoutMs}) => {
    const warnings = [];
    const step = async (name, fn) => {
        try {
            return await fn();
        } catch (err) {
            warnings.push(`${name}: ${err && err.message ? err.message : err}`);
            return null;
        }
    };

    // 1. Snapshot the styles we override so they can be restored later.
    await step('snapshot', () => {
        window.__pdfbuddySnapshot = {
            bodyOverflow: document.body.style.overflow,
            bodyBackgroundColor: document.body.style.backgroundColor,
            htmlOverflow: document.documentElement.style.overflow,
            scrollX: window.scrollX,
            scrollY: window.scrollY,
        };
    });

    // 2. Force lazy-loaded images and backgrounds to resolve.
    await step('lazy-images', () => {
        document.querySelectorAll('img').forEach((img) => {
            try {
                if (img.loading === 'lazy') img.loading = 'eager';
                const src = img.dataset.src || img.dataset.lazySrc || img.dataset.original;
                if (src && (!img.getAttribute('src') || img.src.startsWith('data:'))) img.src = src;
                if (img.dataset.srcset && !img.srcset) img.srcset = img.dataset.srcset;
            } catch (err) {
                warnings.push(`lazy-image: ${err.message}`);
            }
        });
        document.querySelectorAll('[data-bg], [data-background]').forEach((el) => {
            try {
                const bg = el.dataset.bg || el.dataset.background;
                if (bg && !el.style.backgroundImage) el.style.backgroundImage = `url("${bg}")`;
            } catch (err) {
                warnings.push(`lazy-background: ${err.message}`);
            }
        });
    });

    // 3. Wait for every image to load or error, bounded by the settle timeout.
    const pending = await step('image-settle', () => {
        const images = Array.from(document.images).filter((img) => !img.complete);
        if (images.length === 0) return 0;
        const settled = Promise.all(images.map((img) => new Promise((resolve) => {
            img.addEventListener('load', resolve, {once: true});
            img.addEventListener('error', resolve, {once: true});
        })));
        const timeout = new Promise((resolve) => setTimeout(resolve, settleTimeoutMs));
        return Promise.race([settled, timeout]).then(
            () => Array.from(document.images).filter((img) => !img.complete).length
        );
    });
    if (pending) warnings.push(`image-settle: ${pending} image(s) still loading after ${settleTimeoutMs}ms`);

    // 4. Expand collapsible content.
    await step('expand', () => {
        document.querySelectorAll('details:not([open])').forEach((el) => el.setAttribute('open', ''));
        document.querySelectorAll('.collapse:not(.show)').forEach((el) => el.classList.add('show'));
        document.querySelectorAll('[aria-expanded="false"]').forEach((el) => {
            try {
                el.setAttribute('aria-expanded', 'true');
                const target = el.getAttribute('aria-controls');
                const region = target && document.getElementById(target);
                if (region) {
                    region.hidden = false;
                    region.style.display = '';
                }
            } catch (err) {
                warnings.push(`aria-expanded: ${err.message}`);
            }
        });
        document.querySelectorAll(
            '[class*="read-more"], [class*="readmore"], [id*="read-more"], [id*="readmore"]'
        ).forEach((el) => {
            try {
                if (el.tagName === 'A' && el.getAttribute('href') && !el.getAttribute('href').startsWith('#')) return;
                // Clicking these could submit a form and navigate away.
                if (el.closest('form') || el.matches('button[type="submit"], input[type="submit"]')) return;
                el.click();
            } catch (err) {
                warnings.push(`read-more: ${err.message}`);
            }
        });
        document.querySelectorAll('.hidden-content, [class*="hidden-content"]').forEach((el) => {
            if (window.getComputedStyle(el).display === 'none') el.style.display = 'block';
        });
    });

    // 5. Inject the print stylesheet.
    await step('styles', () => {
        const existing = document.getElementById('__STYLE_ID__');
        if (existing) existing.remove();
        document.body.style.overflow = 'visible';
        if (!document.body.style.backgroundColor) document.body.style.backgroundColor = 'white';
        document.querySelectorAll('*').forEach((el) => {
            const pos = window.getComputedStyle(el).position;
            if (pos === 'fixed' || pos === 'sticky') el.setAttribute('data-pdfbuddy-pinned', pos);
        });
        const hidden = (hideSelectors || []).filter((sel) => {
            try {
                document.querySelector(sel);
                return true;
            } catch (err) {
                warnings.push(`selector ${sel}: ${err.message}`);
                return false;
            }
        });
        const style = document.createElement('style');
        style.id = '__STYLE_ID__';
        style.textContent = `
            html, body { height: auto !important; overflow: visible !important; }
            [data-pdfbuddy-pinned] { position: absolute !important; }
            * { -webkit-print-color-adjust: exact !important; print-color-adjust: exact !important; }
            ${hidden.length ? hidden.join(',\\n') + ' { display: none !important; }' : ''}
        `;
        document.head.appendChild(style);
    });

    return {success: true, data: {warnings}};
}
""".replace("__STYLE_ID__", STYLE_ELEMENT_ID)

# Undo PREPARE_PAGE_JS as far as the snapshot allows.  Argument: null.
RESTORE_PAGE_JS = """
() => {
    const style = document.getElementById('__STYLE_ID__');
    if (style) style.remove();
    document.querySelectorAll('[data-pdfbuddy-pinned]').forEach((el) => el.removeAttribute('data-pdfbuddy-pinned'));
    const snap = window.__pdfbuddySnapshot;
    if (!snap) return {success: false, error: 'no snapshot'};
    document.body.style.overflow = snap.bodyOverflow;
    document.body.style.backgroundColor = snap.bodyBackgroundColor;
    document.documentElement.style.overflow = snap.htmlOverflow;
    window.scrollTo(snap.scrollX, snap.scrollY);
    delete window.__pdfbuddySnapshot;
    return {success: true, data: {}};
}
""".replace("__STYLE_ID__", STYLE_ELEMENT_ID)

# Page and viewport extents in CSS pixels.  Argument: null.
PAGE_METRICS_JS = """
() => {
    const de = document.documentElement;
    const body = document.body || de;
    return {
        success: true,
        data: {
            pageWidth: Math.max(de.scrollWidth, body.scrollWidth, de.clientWidth, body.clientWidth),
            pageHeight: Math.max(de.scrollHeight, body.scrollHeight, de.clientHeight, body.clientHeight),
            viewportWidth: window.innerWidth,
            viewportHeight: window.innerHeight,
            scrollX: window.scrollX,
            scrollY: window.scrollY,
        },
    };
}
"""

# Scroll and report the offset the browser actually clamped to.  Argument: {x, y}.
SCROLL_TO_JS = """
({x, y}) => {
    window.scrollTo(x, y);
    return {success: true, data: {x: window.scrollX, y: window.scrollY}};
}
"""

SCRIPTS_BY_ACTION: dict[str, str] = {
    "preparePage": PREPARE_PAGE_JS,
    "restorePage": RESTORE_PAGE_JS,
    "getPageMetrics": PAGE_METRICS_JS,
    "scrollTo": SCROLL_TO_JS,
}
