from blinker import Namespace

_signals = Namespace()

# sender: the ActionBoard; kwargs: action (descriptor snapshot)
action_state_changed = _signals.signal('action-state-changed')

# sender: the ResourceElement that failed; kwargs: error
resource_error = _signals.signal('resource-error')
