"""DOM selectors and the injected upload observer.

Everything the browser side needs to find resume uploads lives here so it
can be updated in one place when a job site changes its upload widget.

NOTE: The drop-zone selectors avoid broad matches like [class*='drop'],
which also hit every dropdown on the page.
"""

# -- Upload targets ------------------------------------------------------------

FILE_INPUT = 'input[type="file"]'

DROP_ZONES = [
    '[class~="dropzone"]',
    '[class~="drop-zone"]',
    '[class~="file-drop"]',
    '[data-testid*="upload"]',
    '[aria-label*="resume" i]',
    '[aria-label*="upload" i]',
]

# Words near a file input that mark it as a resume field
RESUME_KEYWORDS = ["resume", "cv", "upload"]

# Files larger than this are never read in the page
MAX_READ_BYTES = 10 * 1024 * 1024

# Name of the function exposed to pages via context.expose_binding
RESUME_BINDING = "__jobtrackResumeUploaded"

# -- Injected script -----------------------------------------------------------

# Runs in every frame before page scripts. Watches file inputs and drop
# zones (including ones added later), keeps files whose surrounding label
# text mentions a resume keyword, and hands them to RESUME_BINDING as base64.
UPLOAD_OBSERVER_SCRIPT = """
(() => {
  const FILE_INPUT = %(file_input)s;
  const DROP_ZONES = %(drop_zones)s;
  const KEYWORDS = %(keywords)s;
  const MAX_BYTES = %(max_bytes)d;
  const BINDING = %(binding)s;
  const bound = new WeakSet();

  function labelText(el) {
    const parts = [];
    if (el.id) {
      const label = document.querySelector(`label[for="${CSS.escape(el.id)}"]`);
      if (label) parts.push(label.textContent);
    }
    for (const attr of ["aria-label", "placeholder", "name", "accept"]) {
      if (el.getAttribute(attr)) parts.push(el.getAttribute(attr));
    }
    let node = el.parentElement;
    for (let i = 0; i < 4 && node; i++) {
      parts.push((node.textContent || "").slice(0, 200));
      node = node.parentElement;
    }
    return parts.join(" ").toLowerCase();
  }

  function readBase64(file) {
    return new Promise((resolve, reject) => {
      const reader = new FileReader();
      reader.onload = () => resolve(String(reader.result).split(",")[1] || "");
      reader.onerror = () => reject(reader.error);
      reader.readAsDataURL(file);
    });
  }

  async function handle(file, el) {
    if (!file || file.size > MAX_BYTES) return;
    const text = labelText(el);
    if (!KEYWORDS.some(kw => text.includes(kw))) return;
    let fileData;
    try {
      fileData = await readBase64(file);
    } catch (_) {
      return;
    }
    window[BINDING]({
      fileName: file.name,
      mimeType: file.type,
      fileSize: file.size,
      fileData,
    });
  }

  function bindInput(input) {
    if (bound.has(input)) return;
    bound.add(input);
    input.addEventListener("change", () => {
      for (const file of input.files || []) handle(file, input);
    });
  }

  function bindDropZone(el) {
    if (bound.has(el)) return;
    bound.add(el);
    el.addEventListener("drop", e => {
      const files = e.dataTransfer && e.dataTransfer.files;
      for (const file of files || []) handle(file, el);
    });
  }

  function scan(root) {
    if (root.matches && root.matches(FILE_INPUT)) bindInput(root);
    if (root.matches && root.matches(DROP_ZONES)) bindDropZone(root);
    if (root.querySelectorAll) {
      root.querySelectorAll(FILE_INPUT).forEach(bindInput);
      root.querySelectorAll(DROP_ZONES).forEach(bindDropZone);
    }
  }

  function start() {
    scan(document);
    new MutationObserver(mutations => {
      for (const m of mutations) {
        for (const node of m.addedNodes) {
          if (node.nodeType === Node.ELEMENT_NODE) scan(node);
        }
      }
    }).observe(document.documentElement, { childList: true, subtree: true });
  }

  if (document.documentElement) start();
  else document.addEventListener("DOMContentLoaded", start);
})();
"""
