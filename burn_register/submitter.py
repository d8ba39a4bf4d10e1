import logging

from burn_register.errors import SubmissionError, decode_exception
from burn_register.models import BlockDescriptor, SignedIdentity

logger = logging.getLogger(__name__)

REGISTRATION_MODULE = "SubtensorModule"
REGISTRATION_CALL = "burned_register"
# ~51 minutes of 12s blocks
DEFAULT_MORTALITY = 256


class TransactionSubmitter:
    """Build, sign and dispatch a ``burned_register`` extrinsic for one block.

    ``submit`` returns as soon as the pending pool has accepted the extrinsic;
    finalization is somebody else's problem.
    """

    def __init__(
        self,
        client,
        identity: SignedIdentity,
        netuid: int,
        mortality: int = DEFAULT_MORTALITY,
        tip_rao: int = 0,
    ):
        self.client = client
        self.identity = identity
        self.netuid = netuid
        self.mortality = mortality
        self.tip_rao = tip_rao

    def payload(self) -> dict:
        return {"netuid": self.netuid, "hotkey": self.identity.hotkey_address}

    def submit(self, block: BlockDescriptor):
        # Built fresh for every block so the era anchors on the block we saw.
        try:
            call = self.client.compose_call(REGISTRATION_MODULE, REGISTRATION_CALL, self.payload())
            extrinsic = self.client.sign(
                call, self.identity.coldkey, anchor=block, period=self.mortality, tip=self.tip_rao
            )
        except Exception as e:
            raise SubmissionError(decode_exception(e)) from e
        logger.debug("Signed burned_register for block %d, era period %d", block.sequence_number, self.mortality)
        return self.client.submit_and_watch(extrinsic, anchor=block, period=self.mortality)
