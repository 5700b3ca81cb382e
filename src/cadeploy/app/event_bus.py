# Simple pub/sub
_subs: dict[str, list] = {}

def publish(topic: str, payload=None):
    for h in _subs.get(topic, []):
        try:
            h(payload)
        except Exception as ex:
            # a broken progress printer must not stop a deployment run
            print(f"[event_bus] handler for {topic} failed: {ex!r}")

def subscribe(topic: str, handler):
    _subs.setdefault(topic, []).append(handler)

def unsubscribe(topic: str, handler):
    if handler in _subs.get(topic, []):
        _subs[topic].remove(handler)

def clear():
    _subs.clear()
