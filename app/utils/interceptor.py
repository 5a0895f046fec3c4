"""
Client-side shim injected into proxied pages. It sends the page's own
dynamic requests for allow-listed hosts back through the proxy.
"""

import json
from string import Template

INTERCEPTOR_TEMPLATE = Template("""
<script>
(function() {
  var PROXY_DOMAINS = $domains;
  var ASSET_PATH = $asset_path;
  var HLS_PATH = $hls_path;
  var BLOCKED_URLS = ['/cdn-cgi/rum'];
  var BLOCKED_WS = ['p2p.', 'tracker.'];

  function shouldBlock(url) {
    if (!url) return false;
    var value = String(url).toLowerCase();
    return BLOCKED_URLS.some(function(blocked) { return value.indexOf(blocked) !== -1; });
  }

  function shouldProxy(url) {
    try {
      var target = new URL(url, document.baseURI);
      if (target.origin === window.location.origin) return false;
      return PROXY_DOMAINS.some(function(d) {
        return target.hostname === d || target.hostname.endsWith('.' + d);
      });
    } catch (e) { return false; }
  }

  function absolute(url) {
    return new URL(url, document.baseURI).href;
  }

  function isHls(url) {
    var path = new URL(url, document.baseURI).pathname;
    return /\\.m3u8$$|\\.ts$$/i.test(path);
  }

  function proxyUrl(url, forceAsset) {
    var path = !forceAsset && isHls(url) ? HLS_PATH : ASSET_PATH;
    return path + '?url=' + encodeURIComponent(absolute(url));
  }

  var originalFetch = window.fetch;
  if (originalFetch) {
    window.fetch = function(input, init) {
      var url = typeof input === 'string' ? input : (input && input.url);
      if (shouldBlock(url)) {
        return Promise.resolve(new Response('', { status: 200 }));
      }
      if (shouldProxy(url)) {
        input = typeof input === 'string' ? proxyUrl(url) : new Request(proxyUrl(url), input);
      }
      return originalFetch.call(this, input, init);
    };
  }

  var originalOpen = XMLHttpRequest.prototype.open;
  XMLHttpRequest.prototype.open = function(method, url) {
    var args = Array.prototype.slice.call(arguments);
    if (shouldBlock(url)) {
      args[0] = 'GET';
      args[1] = 'data:text/plain,';
    } else if (shouldProxy(url)) {
      args[1] = proxyUrl(url);
    }
    return originalOpen.apply(this, args);
  };

  var originalCreateElement = document.createElement;
  document.createElement = function(tagName) {
    var element = originalCreateElement.apply(document, arguments);
    var tag = String(tagName).toLowerCase();
    if (tag === 'script' || tag === 'img') {
      var originalSetAttribute = element.setAttribute;
      element.setAttribute = function(name, value) {
        if (String(name).toLowerCase() === 'src' && shouldProxy(value)) {
          value = proxyUrl(value, true);
        }
        return originalSetAttribute.call(this, name, value);
      };
      Object.defineProperty(element, 'src', {
        set: function(value) { this.setAttribute('src', value); },
        get: function() { return this.getAttribute('src'); }
      });
    }
    return element;
  };

  var OriginalWebSocket = window.WebSocket;
  if (OriginalWebSocket) {
    window.WebSocket = function(url, protocols) {
      var value = String(url).toLowerCase();
      if (BLOCKED_WS.some(function(d) { return value.indexOf(d) !== -1; })) {
        var inert = {
          url: url, readyState: 3,
          send: function() {}, close: function() {},
          addEventListener: function() {}, removeEventListener: function() {},
          onopen: null, onclose: null, onerror: null, onmessage: null
        };
        setTimeout(function() {
          if (inert.onclose) inert.onclose({ code: 1000, reason: 'blocked' });
        }, 100);
        return inert;
      }
      return protocols === undefined ? new OriginalWebSocket(url) : new OriginalWebSocket(url, protocols);
    };
    window.WebSocket.prototype = OriginalWebSocket.prototype;
    window.WebSocket.CONNECTING = 0;
    window.WebSocket.OPEN = 1;
    window.WebSocket.CLOSING = 2;
    window.WebSocket.CLOSED = 3;
  }

  function unmute() {
    document.querySelectorAll('video').forEach(function(video) {
      if (video.muted) video.muted = false;
    });
  }
  ['click', 'touchstart', 'keydown'].forEach(function(event) {
    document.addEventListener(event, function() {
      unmute();
      setTimeout(unmute, 500);
      setTimeout(unmute, 1500);
    }, { passive: true });
  });
})();
</script>""")


def build_interceptor_script(domains, asset_path: str, hls_path: str) -> str:
    """Render the interceptor ``<script>`` block for the given allow-list and proxy routes."""
    return INTERCEPTOR_TEMPLATE.substitute(
        domains=json.dumps(list(domains)),
        asset_path=json.dumps(asset_path),
        hls_path=json.dumps(hls_path),
    )
