TRUNK = 'strata.trunk'
REMOTE = 'strata.remote'
RESTACK_COMMITTER_DATE_IS_AUTHOR_DATE = 'strata.restackCommitterDateIsAuthorDate'
NO_VERIFY = 'strata.noVerify'

DEFAULT_REMOTE = 'origin'
REBASE_OPTS_ENV_VAR = 'GIT_STRATA_REBASE_OPTS'
